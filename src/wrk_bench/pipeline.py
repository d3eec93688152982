import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .analysis import DEFAULT_THRESHOLDS, ComparisonReport, RegressionAnalyzer, parse_thresholds
from .config import (
    DEFAULT_DURATION_SECONDS,
    EXPONENTIAL_CONNECTIONS,
    EXPONENTIAL_THREADS,
    BenchSettings,
)
from .errors import BenchError
from .history import HistoryStore, JsonlHistoryStore
from .logging import log_run_complete, log_run_error, log_run_start
from .models import BenchmarkResult, RequestSpec, RunConfig, ScriptText
from .observability import run_scope
from .parser import OutputParser
from .process import ProcessRunner
from .script import ScriptGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOutcome:
    result: BenchmarkResult
    report: ComparisonReport

    def to_dict(self) -> dict[str, Any]:
        return {"result": self.result.to_dict(), "report": self.report.to_dict()}


def exponential_configs(
    duration_s: float = DEFAULT_DURATION_SECONDS,
    *,
    timeout_s: float | None = None,
    bench_settings: BenchSettings | None = None,
) -> list[RunConfig]:
    """Run shapes for every threads x connections pair of the bundled matrix."""
    bench_settings = bench_settings or BenchSettings()
    return [
        RunConfig.from_settings(
            bench_settings,
            duration_s=duration_s,
            threads=threads,
            connections=connections,
            timeout_s=timeout_s,
        )
        for threads in EXPONENTIAL_THREADS
        for connections in EXPONENTIAL_CONNECTIONS
        if threads <= connections
    ]


class BenchmarkPipeline:
    """generate -> run -> parse -> store -> compare for one benchmark name.

    Runs of the same name are serialized through the store's per-name lock, so
    each run is compared against the result recorded by the run before it.
    A failing stage aborts the run before anything reaches the store.
    """

    def __init__(
        self,
        store: HistoryStore,
        *,
        generator: ScriptGenerator | None = None,
        runner: ProcessRunner | None = None,
        parser: OutputParser | None = None,
        analyzer: RegressionAnalyzer | None = None,
        bench_settings: BenchSettings | None = None,
        max_error_percentage: float | None = None,
    ) -> None:
        self.store = store
        self.generator = generator or ScriptGenerator()
        self.runner = runner or ProcessRunner()
        self.parser = parser or OutputParser()
        self.analyzer = analyzer or RegressionAnalyzer(DEFAULT_THRESHOLDS)
        self.settings = bench_settings or BenchSettings()
        self.max_error_percentage = (
            max_error_percentage
            if max_error_percentage is not None
            else self.settings.max_error_percentage
        )

    @classmethod
    def from_settings(cls, bench_settings: BenchSettings | None = None) -> "BenchmarkPipeline":
        bench_settings = bench_settings or BenchSettings.from_env()
        return cls(JsonlHistoryStore(bench_settings.history_dir), bench_settings=bench_settings)

    def run_config(self, **shape: Any) -> RunConfig:
        """RunConfig for ``shape`` using this pipeline's executable and timeout grace."""
        return RunConfig.from_settings(self.settings, **shape)

    def run(
        self,
        name: str,
        request: RequestSpec | ScriptText,
        config: RunConfig,
        thresholds: Mapping[str, Any] | None = None,
    ) -> PipelineOutcome:
        # Bad thresholds must fail before wrk runs and anything is recorded
        parsed = parse_thresholds(thresholds) if thresholds is not None else None

        with run_scope(name, config.key()):
            log_run_start(name, config.key())
            logger.info("Running benchmark %s (%s)", name, config)
            started = time.monotonic()
            try:
                with self.store.lock(name):
                    script = (
                        request
                        if isinstance(request, ScriptText)
                        else self.generator.generate(request)
                    )
                    raw = self.runner.run(script, config)
                    result = self.parser.parse(raw, name=name)
                    baseline = self.store.latest(name)
                    self.store.append(result)
                report = self.analyzer.compare(baseline, result, parsed)
            except BenchError as exc:
                latency_ms = (time.monotonic() - started) * 1000
                logger.error("Benchmark %s failed: %s", name, exc)
                log_run_error(name, latency_ms, str(exc), type(exc).__name__)
                raise

            if not result.is_healthy(self.max_error_percentage):
                logger.warning(
                    "Benchmark %s: errors are %.2f%% of requests, above %.2f%%",
                    name,
                    result.error_percentage,
                    self.max_error_percentage,
                )

            log_run_complete(
                name,
                (time.monotonic() - started) * 1000,
                {
                    "requests_per_sec": result.requests_per_sec,
                    "total_requests": result.total_requests,
                    "total_errors": result.total_errors,
                    "overall": report.overall.value,
                },
            )
        return PipelineOutcome(result=result, report=report)

    def run_matrix(
        self,
        name: str,
        request: RequestSpec | ScriptText,
        configs: Sequence[RunConfig],
        thresholds: Mapping[str, Any] | None = None,
    ) -> list[PipelineOutcome]:
        """Run every config in turn, each recorded under ``<name>@<config key>``.

        Stops at the first failure.
        """
        return [
            self.run(f"{name}@{config.key()}", request, config, thresholds) for config in configs
        ]

    def run_exponential(
        self,
        name: str,
        request: RequestSpec | ScriptText,
        duration_s: float = DEFAULT_DURATION_SECONDS,
        thresholds: Mapping[str, Any] | None = None,
    ) -> list[PipelineOutcome]:
        configs = exponential_configs(duration_s, bench_settings=self.settings)
        return self.run_matrix(name, request, configs, thresholds)


__all__ = ["BenchmarkPipeline", "PipelineOutcome", "exponential_configs"]
