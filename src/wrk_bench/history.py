import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from urllib.parse import quote, unquote

from .errors import StorageError
from .models import SCHEMA_VERSION, BenchmarkResult

logger = logging.getLogger(__name__)

_SUFFIX = ".jsonl"


class HistoryPeriod(str, Enum):
    LAST = "last"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    FOREVER = "forever"

    def cutoff(self, now: datetime | None = None) -> datetime | None:
        """Oldest timestamp still inside the period (None for LAST and FOREVER)."""
        now = now or datetime.now(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        spans = {
            HistoryPeriod.HOUR: timedelta(hours=1),
            HistoryPeriod.DAY: timedelta(days=1),
            HistoryPeriod.WEEK: timedelta(weeks=1),
            HistoryPeriod.MONTH: timedelta(weeks=4),
        }
        span = spans.get(self)
        return now - span if span is not None else None


class HistoryView:
    """Chronological results for one name.

    Every iteration re-reads the store, so the view can be iterated any
    number of times; each pass stops at the records present when it began.
    """

    def __init__(self, store: "HistoryStore", name: str) -> None:
        self._store = store
        self._name = name

    def __iter__(self) -> Iterator[BenchmarkResult]:
        return self._store._iter_records(self._name)


class HistoryStore(ABC):
    """Append-only per-name history of benchmark results."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def lock(self, name: str) -> Iterator[None]:
        """Serialize access to one benchmark name (re-entrant)."""
        with self._locks_guard:
            name_lock = self._locks.setdefault(name, threading.RLock())
        with name_lock:
            yield

    @abstractmethod
    def append(self, result: BenchmarkResult) -> None: ...

    @abstractmethod
    def _iter_records(self, name: str) -> Iterator[BenchmarkResult]: ...

    def all(self, name: str) -> HistoryView:
        return HistoryView(self, name)

    def latest(self, name: str) -> BenchmarkResult | None:
        last: BenchmarkResult | None = None
        with self.lock(name):
            for last in self._iter_records(name):  # noqa: B007
                pass
        return last

    def since(
        self, name: str, period: HistoryPeriod, *, now: datetime | None = None
    ) -> list[BenchmarkResult]:
        if period is HistoryPeriod.LAST:
            latest = self.latest(name)
            return [latest] if latest is not None else []
        cutoff = period.cutoff(now)
        return [r for r in self.all(name) if cutoff is None or r.timestamp >= cutoff]


class JsonlHistoryStore(HistoryStore):
    """One JSON-lines file per benchmark name under ``root``."""

    def __init__(self, root: str | Path) -> None:
        super().__init__()
        self.root = Path(root)

    def path_for(self, name: str) -> Path:
        if not name:
            raise StorageError("Benchmark name must not be empty")
        return self.root / f"{quote(name, safe='')}{_SUFFIX}"

    def names(self) -> list[str]:
        if not self.root.is_dir():
            return []
        try:
            return sorted(unquote(p.name[: -len(_SUFFIX)]) for p in self.root.glob(f"*{_SUFFIX}"))
        except OSError as exc:
            raise StorageError(f"Cannot list history in {self.root}: {exc}") from exc

    def append(self, result: BenchmarkResult) -> None:
        path = self.path_for(result.name)
        line = json.dumps(result.to_dict(), ensure_ascii=False) + "\n"
        with self.lock(result.name):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as f:
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as exc:
                raise StorageError(f"Cannot append to {path}: {exc}") from exc
        logger.debug("Recorded %s result at %s", result.name, result.timestamp.isoformat())

    def _iter_records(self, name: str) -> Iterator[BenchmarkResult]:
        path = self.path_for(name)
        with self.lock(name):
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                return
            except OSError as exc:
                raise StorageError(f"Cannot read {path}: {exc}") from exc

        try:
            with path.open("rb") as f:
                lineno = 0
                while f.tell() < size:
                    raw = f.readline()
                    lineno += 1
                    if raw.strip():
                        yield self._decode(raw, path, lineno)
        except OSError as exc:
            raise StorageError(f"Cannot read {path}: {exc}") from exc

    def _decode(self, raw: bytes, path: Path, lineno: int) -> BenchmarkResult:
        try:
            data = json.loads(raw)
            version = int(data.get("schema_version", 1))
            if version > SCHEMA_VERSION:
                logger.debug("%s:%d has schema %d, reading known fields", path, lineno, version)
            return BenchmarkResult.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise StorageError(f"Corrupt history record {path}:{lineno}: {exc}") from exc


__all__ = ["HistoryPeriod", "HistoryStore", "HistoryView", "JsonlHistoryStore"]
