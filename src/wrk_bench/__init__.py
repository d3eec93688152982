__version__ = "0.1.0.dev0"

from .analysis import ComparisonReport, RegressionAnalyzer, Threshold, Verdict, best_result
from .config import BenchSettings
from .errors import (
    BenchError,
    ParseError,
    ProcessError,
    ProcessExitError,
    ProcessLaunchError,
    ProcessTimeoutError,
    RunConfigError,
    ScriptGenerationError,
    StorageError,
    ThresholdError,
)
from .history import HistoryPeriod, HistoryStore, JsonlHistoryStore
from .models import (
    BenchmarkResult,
    ErrorCounts,
    HttpMethod,
    RawOutput,
    RequestSpec,
    RunConfig,
    ScriptText,
)
from .parser import OutputParser
from .pipeline import BenchmarkPipeline, PipelineOutcome, exponential_configs
from .process import ProcessRunner
from .script import ScriptGenerator

__all__ = [
    "__version__",
    "BenchError",
    "BenchSettings",
    "BenchmarkPipeline",
    "BenchmarkResult",
    "ComparisonReport",
    "ErrorCounts",
    "HistoryPeriod",
    "HistoryStore",
    "HttpMethod",
    "JsonlHistoryStore",
    "OutputParser",
    "ParseError",
    "PipelineOutcome",
    "ProcessError",
    "ProcessExitError",
    "ProcessLaunchError",
    "ProcessRunner",
    "ProcessTimeoutError",
    "RawOutput",
    "RegressionAnalyzer",
    "RequestSpec",
    "RunConfig",
    "RunConfigError",
    "ScriptGenerationError",
    "ScriptGenerator",
    "ScriptText",
    "StorageError",
    "Threshold",
    "ThresholdError",
    "Verdict",
    "best_result",
    "exponential_configs",
]
