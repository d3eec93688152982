from .context import RunContext, current_run, run_scope
from .events import KEEP_ROTATED, PAYLOAD_LIMITS, log_event, scrub_payload

__all__ = [
    "KEEP_ROTATED",
    "PAYLOAD_LIMITS",
    "RunContext",
    "current_run",
    "log_event",
    "run_scope",
    "scrub_payload",
]
