import math
from collections.abc import Callable

import pytest

from wrk_bench.analysis import (
    DEFAULT_THRESHOLDS,
    RegressionAnalyzer,
    Threshold,
    ThresholdKind,
    Verdict,
    best_result,
    canonical_metric,
)
from wrk_bench.errors import ThresholdError
from wrk_bench.models import BenchmarkResult, ErrorCounts


class TestCanonicalMetric:
    @pytest.mark.parametrize(
        ("alias", "expected"),
        [
            ("rps", "requests_per_sec"),
            ("RPS", "requests_per_sec"),
            ("transfer_rate", "transfer_bytes_per_sec"),
            ("p99_latency", "latency_p99"),
            ("p99.90_latency", "latency_p99.9"),
            ("latency_p50.0", "latency_p50"),
            ("errors", "error_percentage"),
            ("latency_avg", "latency_avg"),
        ],
    )
    def test_aliases(self, alias: str, expected: str) -> None:
        assert canonical_metric(alias) == expected


class TestThresholdParse:
    def test_relative(self) -> None:
        assert Threshold.parse("-5%") == Threshold(ThresholdKind.RELATIVE, 5.0)
        assert Threshold.parse("+10 %") == Threshold(ThresholdKind.RELATIVE, 10.0)

    def test_absolute_duration_in_ns(self) -> None:
        assert Threshold.parse("5ms") == Threshold(ThresholdKind.ABSOLUTE, 5e6)
        assert Threshold.parse("+250us") == Threshold(ThresholdKind.ABSOLUTE, 250e3)

    def test_absolute_plain_number(self) -> None:
        assert Threshold.parse("+1") == Threshold(ThresholdKind.ABSOLUTE, 1.0)
        assert Threshold.parse(50) == Threshold(ThresholdKind.ABSOLUTE, 50.0)

    @pytest.mark.parametrize("spec", ["off", "OFF", "disabled", "none", None, False])
    def test_disabled(self, spec: object) -> None:
        assert Threshold.parse(spec).kind is ThresholdKind.DISABLED  # type: ignore[arg-type]

    @pytest.mark.parametrize("spec", ["fast", "5 parsecs", "%", "x%", [1]])
    def test_invalid(self, spec: object) -> None:
        with pytest.raises(ThresholdError):
            Threshold.parse(spec)  # type: ignore[arg-type]

    def test_units_are_case_sensitive(self) -> None:
        assert Threshold.parse("5m") == Threshold(ThresholdKind.ABSOLUTE, 60e9)
        with pytest.raises(ThresholdError, match="Unknown threshold unit 'M'"):
            Threshold.parse("5M")
        with pytest.raises(ThresholdError):
            Threshold.parse("5MS")

    def test_bundled_defaults(self) -> None:
        assert DEFAULT_THRESHOLDS["requests_per_sec"] == Threshold.relative(5)
        assert DEFAULT_THRESHOLDS["latency_p99.9"] == Threshold.relative(15)
        assert DEFAULT_THRESHOLDS["latency_max"] == Threshold.disabled()
        assert DEFAULT_THRESHOLDS["error_percentage"] == Threshold.absolute(1)


class TestThresholdClassify:
    def test_throughput_drop_beyond_tolerance_regresses(self) -> None:
        assert Threshold.relative(5).classify(1000, 940, higher_better=True) is Verdict.REGRESSED

    def test_throughput_drop_within_tolerance_is_stable(self) -> None:
        assert Threshold.relative(5).classify(1000, 960, higher_better=True) is Verdict.STABLE

    def test_exact_tolerance_is_stable(self) -> None:
        assert Threshold.relative(5).classify(1000, 950, higher_better=True) is Verdict.STABLE

    def test_latency_increase_regresses(self) -> None:
        threshold = Threshold.relative(10)
        assert threshold.classify(10.0, 12.0, higher_better=False) is Verdict.REGRESSED
        assert threshold.classify(10.0, 8.0, higher_better=False) is Verdict.IMPROVED

    def test_absolute_latency(self) -> None:
        threshold = Threshold.parse("5ms")
        assert threshold.classify(10e6, 16e6, higher_better=False) is Verdict.REGRESSED
        assert threshold.classify(10e6, 14e6, higher_better=False) is Verdict.STABLE

    def test_zero_baseline(self) -> None:
        threshold = Threshold.relative(5)
        assert threshold.classify(0.0, 0.0, higher_better=False) is Verdict.STABLE
        assert threshold.classify(0.0, 1.0, higher_better=False) is Verdict.REGRESSED
        assert threshold.classify(0.0, 1.0, higher_better=True) is Verdict.IMPROVED

    def test_disabled_always_stable(self) -> None:
        assert Threshold.disabled().classify(1, 1e9, higher_better=False) is Verdict.STABLE


class TestRegressionAnalyzer:
    def test_rps_drop_regresses(self, make_result: Callable[..., BenchmarkResult]) -> None:
        report = RegressionAnalyzer().compare(
            make_result(rps=1000.0), make_result(rps=940.0), {"rps": "-5%"}
        )
        assert report.overall is Verdict.REGRESSED
        assert report.regressed == ["requests_per_sec"]
        verdict = report.verdict_for("rps")
        assert verdict is not None
        assert verdict.delta == pytest.approx(-60.0)
        assert verdict.relative_delta == pytest.approx(-6.0)

    def test_small_rps_drop_is_stable(self, make_result: Callable[..., BenchmarkResult]) -> None:
        report = RegressionAnalyzer().compare(
            make_result(rps=1000.0), make_result(rps=960.0), {"rps": "-5%"}
        )
        assert report.overall is Verdict.STABLE

    def test_p99_absolute_regression(self, make_result: Callable[..., BenchmarkResult]) -> None:
        report = RegressionAnalyzer().compare(
            make_result(p99_ns=10e6), make_result(p99_ns=16e6), {"p99_latency": "5ms"}
        )
        assert report.overall is Verdict.REGRESSED
        assert report.regressed == ["latency_p99"]

    def test_regression_outweighs_improvement(
        self, make_result: Callable[..., BenchmarkResult]
    ) -> None:
        report = RegressionAnalyzer().compare(
            make_result(rps=1000.0, p99_ns=10e6),
            make_result(rps=2000.0, p99_ns=20e6),
            {"rps": "5%", "p99_latency": "10%"},
        )
        assert report.improved == ["requests_per_sec"]
        assert report.regressed == ["latency_p99"]
        assert report.overall is Verdict.REGRESSED

    def test_improvement_only(self, make_result: Callable[..., BenchmarkResult]) -> None:
        report = RegressionAnalyzer().compare(
            make_result(rps=1000.0), make_result(rps=2000.0), {"rps": "5%"}
        )
        assert report.overall is Verdict.IMPROVED

    def test_unconfigured_metrics_are_stable(
        self, make_result: Callable[..., BenchmarkResult]
    ) -> None:
        report = RegressionAnalyzer().compare(make_result(rps=1000.0), make_result(rps=1.0))
        assert report.overall is Verdict.STABLE
        assert all(v.threshold.kind is ThresholdKind.DISABLED for v in report.verdicts)

    def test_defaults_apply_and_can_be_overridden(
        self, make_result: Callable[..., BenchmarkResult]
    ) -> None:
        analyzer = RegressionAnalyzer(DEFAULT_THRESHOLDS)
        baseline, current = make_result(rps=1000.0), make_result(rps=900.0)
        assert analyzer.compare(baseline, current).overall is Verdict.REGRESSED
        assert analyzer.compare(baseline, current, {"rps": "off"}).overall is Verdict.STABLE

    def test_no_baseline(self, make_result: Callable[..., BenchmarkResult]) -> None:
        report = RegressionAnalyzer(DEFAULT_THRESHOLDS).compare(None, make_result())
        assert report.no_baseline
        assert report.overall is Verdict.STABLE
        assert all(v.baseline is None and v.delta is None for v in report.verdicts)
        assert report.warnings

    def test_one_sided_metric_skipped_with_warning(
        self, make_result: Callable[..., BenchmarkResult]
    ) -> None:
        report = RegressionAnalyzer().compare(
            make_result(p99_ns=None), make_result(p99_ns=50e6), {"p99_latency": "1%"}
        )
        assert report.verdict_for("latency_p99") is None
        assert report.overall is Verdict.STABLE
        assert any("latency_p99" in w for w in report.warnings)

    def test_error_percentage_absolute_points(
        self, make_result: Callable[..., BenchmarkResult]
    ) -> None:
        report = RegressionAnalyzer().compare(
            make_result(requests=1000),
            make_result(requests=1000, errors=ErrorCounts(timeout=20)),
            {"errors": "+1"},
        )
        assert report.regressed == ["error_percentage"]

    def test_name_mismatch_warns(self, make_result: Callable[..., BenchmarkResult]) -> None:
        report = RegressionAnalyzer().compare(make_result("a"), make_result("b"))
        assert any("baseline is from 'a'" in w for w in report.warnings)

    def test_report_to_dict(self, make_result: Callable[..., BenchmarkResult]) -> None:
        report = RegressionAnalyzer().compare(
            make_result(rps=1000.0), make_result(rps=940.0), {"rps": "-5%"}
        )
        data = report.to_dict()
        assert data["overall"] == "regressed"
        rps = next(m for m in data["metrics"] if m["metric"] == "requests_per_sec")
        assert rps["threshold"] == "5%"
        assert rps["verdict"] == "regressed"

    def test_compare_is_repeatable(self, make_result: Callable[..., BenchmarkResult]) -> None:
        analyzer = RegressionAnalyzer(DEFAULT_THRESHOLDS)
        baseline = make_result(rps=1000.0, p99_ns=5e6)
        current = make_result(rps=900.0, p99_ns=7e6, errors=ErrorCounts(timeout=3))

        first = analyzer.compare(baseline, current, {"rps": "-5%"})
        second = analyzer.compare(baseline, current, {"rps": "-5%"})

        assert first == second
        assert first.to_dict() == second.to_dict()
        assert first.overall is Verdict.REGRESSED

    def test_invalid_threshold_raises(self, make_result: Callable[..., BenchmarkResult]) -> None:
        with pytest.raises(ThresholdError):
            RegressionAnalyzer().compare(make_result(), make_result(), {"rps": "lots"})


class TestBestResult:
    def test_highest_healthy_throughput_wins(
        self, make_result: Callable[..., BenchmarkResult]
    ) -> None:
        noisy = make_result(rps=5000.0, requests=100, errors=ErrorCounts(timeout=50))
        good = make_result(rps=3000.0)
        slower = make_result(rps=2000.0)
        assert best_result([slower, noisy, good], max_error_percentage=2.0) == good

    def test_tie_broken_by_successes(self, make_result: Callable[..., BenchmarkResult]) -> None:
        fewer = make_result(rps=1000.0, requests=100)
        more = make_result(rps=1000.0, requests=200)
        assert best_result([fewer, more]) == more

    def test_none_when_all_unhealthy(self, make_result: Callable[..., BenchmarkResult]) -> None:
        bad = make_result(requests=10, errors=ErrorCounts(connect=10))
        assert best_result([bad]) is None
        assert best_result([]) is None


def test_relative_delta_undefined_for_zero_baseline(
    make_result: Callable[..., BenchmarkResult],
) -> None:
    report = RegressionAnalyzer().compare(
        make_result(requests=1000),
        make_result(requests=1000, errors=ErrorCounts(read=5)),
    )
    verdict = report.verdict_for("error_percentage")
    assert verdict is not None
    assert verdict.relative_delta is None
    assert not math.isnan(verdict.delta or 0.0)
