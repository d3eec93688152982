import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import DEFAULT_THRESHOLD_SPECS, settings
from .errors import ThresholdError
from .logging import log_comparison
from .models import BenchmarkResult, percentile_label
from .parser import DURATION_UNITS_NS

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    IMPROVED = "improved"
    STABLE = "stable"
    REGRESSED = "regressed"


class ThresholdKind(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"
    DISABLED = "disabled"


# Metrics where a higher value is better; every other metric (latency,
# error share) is better when lower.
THROUGHPUT_METRICS = frozenset({"requests_per_sec", "transfer_bytes_per_sec"})

_METRIC_ALIASES: dict[str, str] = {
    "rps": "requests_per_sec",
    "requests_sec": "requests_per_sec",
    "transfer_rate": "transfer_bytes_per_sec",
    "transfer": "transfer_bytes_per_sec",
    "avg_latency": "latency_avg",
    "max_latency": "latency_max",
    "errors": "error_percentage",
    "error_rate": "error_percentage",
}
_PERCENTILE_ALIAS = re.compile(r"^(?:p(\d+(?:\.\d+)?)_latency|latency_p(\d+(?:\.\d+)?))$")
_THRESHOLD_SPEC = re.compile(r"^([+-]?\d+(?:\.\d+)?)\s*([a-zµ]*)$", re.IGNORECASE)
_DISABLED_SPECS = frozenset({"off", "disabled", "none", "false", ""})


def canonical_metric(name: str) -> str:
    """Map user-facing metric names (``rps``, ``p99_latency``) to result metric keys."""
    key = name.strip().lower()
    if key in _METRIC_ALIASES:
        return _METRIC_ALIASES[key]
    match = _PERCENTILE_ALIAS.match(key)
    if match:
        return f"latency_p{percentile_label(match.group(1) or match.group(2))}"
    return key


def higher_is_better(metric: str) -> bool:
    return metric in THROUGHPUT_METRICS


@dataclass(frozen=True)
class Threshold:
    """Tolerance for one metric.

    ``value`` is a percentage for RELATIVE thresholds and a delta in the
    metric's unit (nanoseconds for latency) for ABSOLUTE ones. Direction comes
    from the metric, so tolerances are stored unsigned.
    """

    kind: ThresholdKind
    value: float = 0.0

    @classmethod
    def absolute(cls, delta: float) -> "Threshold":
        return cls(ThresholdKind.ABSOLUTE, abs(float(delta)))

    @classmethod
    def relative(cls, percent: float) -> "Threshold":
        return cls(ThresholdKind.RELATIVE, abs(float(percent)))

    @classmethod
    def disabled(cls) -> "Threshold":
        return cls(ThresholdKind.DISABLED)

    @classmethod
    def parse(cls, spec: "Threshold | str | float | int | bool | None") -> "Threshold":
        if isinstance(spec, Threshold):
            return spec
        if spec is None or spec is False:
            return cls.disabled()
        if isinstance(spec, (int, float)) and not isinstance(spec, bool):
            return cls.absolute(spec)
        if not isinstance(spec, str):
            raise ThresholdError(f"Unsupported threshold: {spec!r}")

        text = spec.strip()
        if text.lower() in _DISABLED_SPECS:
            return cls.disabled()
        if text.endswith("%"):
            try:
                return cls.relative(float(text[:-1].strip()))
            except ValueError:
                raise ThresholdError(f"Invalid relative threshold: {spec!r}") from None

        match = _THRESHOLD_SPEC.match(text)
        if not match:
            raise ThresholdError(f"Invalid threshold: {spec!r}")
        value = float(match.group(1))
        unit = match.group(2)
        if not unit:
            return cls.absolute(value)
        # Units are case-sensitive: "5M" is not read as five minutes
        factor = DURATION_UNITS_NS.get(unit)
        if factor is None:
            raise ThresholdError(
                f"Unknown threshold unit {unit!r} in {spec!r} (expected one of: "
                f"{', '.join(DURATION_UNITS_NS)})"
            )
        return cls.absolute(value * factor)

    def classify(self, baseline: float, current: float, *, higher_better: bool) -> Verdict:
        if self.kind is ThresholdKind.DISABLED:
            return Verdict.STABLE
        delta = current - baseline
        # Positive gain means the metric moved in the good direction
        gain = delta if higher_better else -delta
        if self.kind is ThresholdKind.RELATIVE:
            if baseline == 0:
                change = 0.0 if gain == 0 else math.copysign(math.inf, gain)
            else:
                change = gain * 100.0 / abs(baseline)
        else:
            change = gain
        if change < -self.value:
            return Verdict.REGRESSED
        if change > self.value:
            return Verdict.IMPROVED
        return Verdict.STABLE

    def __str__(self) -> str:
        if self.kind is ThresholdKind.DISABLED:
            return "off"
        if self.kind is ThresholdKind.RELATIVE:
            return f"{self.value:g}%"
        return f"{self.value:g}"


def parse_thresholds(specs: Mapping[str, Any]) -> dict[str, Threshold]:
    return {canonical_metric(name): Threshold.parse(spec) for name, spec in specs.items()}


DEFAULT_THRESHOLDS: dict[str, Threshold] = parse_thresholds(DEFAULT_THRESHOLD_SPECS)


@dataclass(frozen=True)
class MetricVerdict:
    metric: str
    baseline: float | None
    current: float
    threshold: Threshold
    verdict: Verdict

    @property
    def delta(self) -> float | None:
        if self.baseline is None:
            return None
        return self.current - self.baseline

    @property
    def relative_delta(self) -> float | None:
        """Signed change in percent of the baseline."""
        if self.baseline is None or self.baseline == 0:
            return None
        return (self.current - self.baseline) * 100.0 / abs(self.baseline)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "baseline": self.baseline,
            "current": self.current,
            "delta": self.delta,
            "relative_delta": self.relative_delta,
            "threshold": str(self.threshold),
            "verdict": self.verdict.value,
        }


@dataclass(frozen=True)
class ComparisonReport:
    name: str
    baseline: BenchmarkResult | None
    current: BenchmarkResult
    verdicts: tuple[MetricVerdict, ...]
    warnings: tuple[str, ...] = ()
    no_baseline: bool = False

    @property
    def overall(self) -> Verdict:
        # One regression fails the whole comparison
        found = {v.verdict for v in self.verdicts}
        if Verdict.REGRESSED in found:
            return Verdict.REGRESSED
        if Verdict.IMPROVED in found:
            return Verdict.IMPROVED
        return Verdict.STABLE

    @property
    def regressed(self) -> list[str]:
        return [v.metric for v in self.verdicts if v.verdict is Verdict.REGRESSED]

    @property
    def improved(self) -> list[str]:
        return [v.metric for v in self.verdicts if v.verdict is Verdict.IMPROVED]

    def verdict_for(self, metric: str) -> MetricVerdict | None:
        key = canonical_metric(metric)
        return next((v for v in self.verdicts if v.metric == key), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "overall": self.overall.value,
            "no_baseline": self.no_baseline,
            "baseline": self.baseline.to_dict() if self.baseline is not None else None,
            "current": self.current.to_dict(),
            "metrics": [v.to_dict() for v in self.verdicts],
            "warnings": list(self.warnings),
        }


class RegressionAnalyzer:
    """Compares a result with its baseline metric by metric.

    Metrics without a configured threshold are compared with a disabled
    threshold and therefore always come out stable.
    """

    def __init__(self, default_thresholds: Mapping[str, Any] | None = None) -> None:
        self._defaults = parse_thresholds(default_thresholds or {})

    def compare(
        self,
        baseline: BenchmarkResult | None,
        current: BenchmarkResult,
        thresholds: Mapping[str, Any] | None = None,
    ) -> ComparisonReport:
        resolved = dict(self._defaults)
        if thresholds is not None:
            resolved.update(parse_thresholds(thresholds))

        current_metrics = current.metrics()

        if baseline is None:
            verdicts = tuple(
                MetricVerdict(
                    metric=metric,
                    baseline=None,
                    current=value,
                    threshold=resolved.get(metric, Threshold.disabled()),
                    verdict=Verdict.STABLE,
                )
                for metric, value in current_metrics.items()
            )
            report = ComparisonReport(
                name=current.name,
                baseline=None,
                current=current,
                verdicts=verdicts,
                warnings=(f"no baseline for {current.name!r}, all metrics reported stable",),
                no_baseline=True,
            )
            log_comparison(current.name, report.overall.value, [], True)
            return report

        baseline_metrics = baseline.metrics()
        warnings: list[str] = []
        if baseline.name != current.name:
            warnings.append(f"baseline is from {baseline.name!r}, current is {current.name!r}")

        verdicts_list: list[MetricVerdict] = []
        for metric, value in current_metrics.items():
            if metric not in baseline_metrics:
                warnings.append(f"{metric}: missing from baseline, skipped")
                continue
            threshold = resolved.get(metric, Threshold.disabled())
            verdicts_list.append(
                MetricVerdict(
                    metric=metric,
                    baseline=baseline_metrics[metric],
                    current=value,
                    threshold=threshold,
                    verdict=threshold.classify(
                        baseline_metrics[metric], value, higher_better=higher_is_better(metric)
                    ),
                )
            )
        for metric in baseline_metrics:
            if metric not in current_metrics:
                warnings.append(f"{metric}: missing from current result, skipped")

        for warning in warnings:
            logger.warning("%s: %s", current.name, warning)

        report = ComparisonReport(
            name=current.name,
            baseline=baseline,
            current=current,
            verdicts=tuple(verdicts_list),
            warnings=tuple(warnings),
        )
        log_comparison(current.name, report.overall.value, report.regressed, False)
        return report


def best_result(
    results: Iterable[BenchmarkResult],
    max_error_percentage: float = settings.MAX_ERROR_PERCENTAGE,
) -> BenchmarkResult | None:
    """Best healthy run: highest rps, then successes, requests and transfer rate."""
    healthy = [r for r in results if r.is_healthy(max_error_percentage)]
    if not healthy:
        return None
    return max(
        healthy,
        key=lambda r: (
            r.requests_per_sec,
            r.successes,
            r.total_requests,
            r.transfer_bytes_per_sec,
        ),
    )


__all__ = [
    "DEFAULT_THRESHOLDS",
    "THROUGHPUT_METRICS",
    "ComparisonReport",
    "MetricVerdict",
    "RegressionAnalyzer",
    "Threshold",
    "ThresholdKind",
    "Verdict",
    "best_result",
    "canonical_metric",
    "higher_is_better",
    "parse_thresholds",
]
