"""Identity of the benchmark run in progress, attached to every event."""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass


@dataclass(frozen=True)
class RunContext:
    run_id: str
    benchmark: str
    config_key: str


_current: ContextVar[RunContext | None] = ContextVar("wrk_bench_run", default=None)


def current_run() -> RunContext | None:
    return _current.get()


@contextmanager
def run_scope(benchmark: str, config_key: str) -> Iterator[RunContext]:
    """Tag events emitted inside the block with a fresh run id.

    Scopes nest; leaving one restores the enclosing run.
    """
    run = RunContext(
        run_id=f"{config_key}-{uuid.uuid4().hex[:8]}",
        benchmark=benchmark,
        config_key=config_key,
    )
    token = _current.set(run)
    try:
        yield run
    finally:
        _current.reset(token)
