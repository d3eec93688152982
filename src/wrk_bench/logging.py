from typing import Any

from wrk_bench.observability import log_event


def log_process_start(command: list[str], timeout_s: float) -> None:
    log_event(
        "process_start",
        "debug",
        executable=command[0] if command else "",
        args=command[1:],
        timeout_s=timeout_s,
    )


def log_process_exit(exit_code: int, latency_ms: float, stderr: str) -> None:
    log_event(
        "process_exit",
        "info" if exit_code == 0 else "warning",
        exit_code=exit_code,
        latency_ms=int(latency_ms),
        stderr=stderr or None,
    )


def log_process_timeout(timeout_s: float, latency_ms: float) -> None:
    log_event("process_timeout", "error", timeout_s=timeout_s, latency_ms=int(latency_ms))


def log_run_start(name: str, config_key: str) -> None:
    log_event("run_start", benchmark=name, config=config_key)


def log_run_complete(name: str, latency_ms: float, summary: dict[str, Any]) -> None:
    log_event("run_complete", benchmark=name, latency_ms=int(latency_ms), **summary)


def log_run_error(name: str, latency_ms: float, error: str, error_type: str) -> None:
    log_event(
        "run_error",
        "error",
        benchmark=name,
        latency_ms=int(latency_ms),
        error=error,
        error_type=error_type,
    )


def log_comparison(name: str, overall: str, regressed: list[str], no_baseline: bool) -> None:
    log_event(
        "comparison",
        "warning" if regressed else "info",
        benchmark=name,
        overall=overall,
        regressed=regressed,
        no_baseline=no_baseline,
    )
