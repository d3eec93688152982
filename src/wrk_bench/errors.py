class BenchError(Exception):
    """Base exception for the benchmark engine."""

    error_code: str = "BENCH_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ScriptGenerationError(BenchError):
    """The request spec or user script cannot be turned into a wrk script."""

    error_code = "SCRIPT_GENERATION_ERROR"


class RunConfigError(BenchError, ValueError):
    """Run parameters violate their invariants."""

    error_code = "RUN_CONFIG_ERROR"


class ThresholdError(BenchError, ValueError):
    """A regression threshold specification cannot be parsed."""

    error_code = "THRESHOLD_ERROR"


class ProcessError(BenchError):
    """Base class for failures of the external benchmarking process."""

    error_code = "PROCESS_ERROR"

    def __init__(self, message: str, *, stdout: str = "", stderr: str = "") -> None:
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message)


class ProcessLaunchError(ProcessError):
    """The executable could not be found or started."""

    error_code = "PROCESS_LAUNCH_ERROR"

    def __init__(self, executable: str, reason: str) -> None:
        self.executable = executable
        super().__init__(f"Cannot launch '{executable}': {reason}")


class ProcessTimeoutError(ProcessError):
    """The process outlived its wall-clock budget and was killed.

    ``stdout``/``stderr`` hold whatever was collected before the kill.
    """

    error_code = "PROCESS_TIMEOUT"

    def __init__(self, timeout_s: float, *, stdout: str = "", stderr: str = "") -> None:
        self.timeout_s = timeout_s
        super().__init__(
            f"Benchmark process timed out after {timeout_s:g}s", stdout=stdout, stderr=stderr
        )


class ProcessExitError(ProcessError):
    """The process exited with a non-zero status."""

    error_code = "PROCESS_EXIT_ERROR"

    def __init__(self, exit_code: int, *, stdout: str = "", stderr: str = "") -> None:
        self.exit_code = exit_code
        detail = stderr.strip() or stdout.strip() or "no output"
        super().__init__(
            f"Benchmark process exited with status {exit_code}: {detail}",
            stdout=stdout,
            stderr=stderr,
        )


class ParseError(BenchError):
    """The benchmark report is malformed or missing required lines."""

    error_code = "PARSE_ERROR"

    def __init__(self, reason: str, line: str | None = None) -> None:
        self.reason = reason
        self.line = line
        if line is None:
            super().__init__(reason)
        else:
            super().__init__(f"{reason}: {line!r}")


class StorageError(BenchError):
    """History persistence failed; the result is not considered recorded."""

    error_code = "STORAGE_ERROR"


__all__ = [
    "BenchError",
    "ParseError",
    "ProcessError",
    "ProcessExitError",
    "ProcessLaunchError",
    "ProcessTimeoutError",
    "RunConfigError",
    "ScriptGenerationError",
    "StorageError",
    "ThresholdError",
]
