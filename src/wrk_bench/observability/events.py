"""JSON-lines event log for benchmark runs.

Disabled unless ``WRK_BENCH_LOGGING`` is ``safe`` or ``full``. Every line is
one event from :mod:`wrk_bench.logging`, tagged with the run in progress.

Only ``stdout``, ``stderr`` and ``error`` can carry target responses or
credentials echoed back by wrk. In safe mode they are replaced by their
length and a digest; in full mode they are kept but capped in size. When the
file grows past ``MAX_LOG_SIZE_BYTES`` it is shifted to ``<name>.1`` and older
generations move up, keeping ``KEEP_ROTATED`` of them.
"""

import hashlib
import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..config import settings
from .context import current_run

logger = logging.getLogger(__name__)

KEEP_ROTATED = 5

# Payload fields and their size cap in full mode
PAYLOAD_LIMITS: dict[str, int] = {"stdout": 2000, "stderr": 2000, "error": 500}

_write_lock = threading.Lock()


def scrub_payload(field: str, text: str) -> str:
    if not text:
        return text
    if settings.EVENT_LOG_REDACT:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]
        return f"<{len(text)} chars, sha256:{digest}>"
    limit = PAYLOAD_LIMITS.get(field)
    if limit is None or len(text) <= limit:
        return text
    return f"{text[:limit]} <+{len(text) - limit} chars>"


def _shift_generations(path: Path) -> None:
    path.with_name(f"{path.name}.{KEEP_ROTATED}").unlink(missing_ok=True)
    for n in range(KEEP_ROTATED - 1, 0, -1):
        older = path.with_name(f"{path.name}.{n}")
        if older.exists():
            older.replace(path.with_name(f"{path.name}.{n + 1}"))
    path.replace(path.with_name(f"{path.name}.1"))


def log_event(kind: str, level: str = "info", **fields: Any) -> None:
    """Append one event; failures to write are reported through ``logging`` only."""
    if not settings.EVENT_LOGGING:
        return

    event: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "kind": kind,
        "level": level,
    }
    run = current_run()
    if run is not None:
        event["run_id"] = run.run_id
        event["benchmark"] = run.benchmark
        event["config"] = run.config_key
    for key, value in fields.items():
        if key in PAYLOAD_LIMITS and isinstance(value, str):
            value = scrub_payload(key, value)
        event[key] = value

    line = json.dumps(event, ensure_ascii=False, default=str)
    path = settings.LOG_PATH
    with _write_lock:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.is_file() and path.stat().st_size > settings.MAX_LOG_SIZE_BYTES:
                _shift_generations(path)
            with path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as exc:
            logger.warning("Cannot write event log %s: %s", path, exc)
