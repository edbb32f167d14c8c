"""
Structured lifecycle logging.

One contract for pipeline and handler lifecycle events:
- component
- operation
- correlation_id (optional)
- outcome
- duration_ms (optional, omitted if None)
- reason (optional)

Never log secrets, invitation codes in full, or whole payloads.
"""
from logging import Logger
from typing import Optional


def mask_code(code: Optional[str]) -> str:
    """Log-safe form of an invitation code: first 4 characters only."""
    if not code:
        return "<empty>"
    return code[:4] + "..."


def log_event(
    logger: Logger,
    *,
    component: str,
    operation: str,
    correlation_id: Optional[str] = None,
    outcome: str,
    duration_ms: Optional[int] = None,
    reason: Optional[str] = None,
    level: str = "info",
    message: Optional[str] = None,
) -> None:
    """
    Emit a structured log event.

    Args:
        logger: Logger instance
        component: Component name (e.g. "activation", "telegram", "shutdown")
        operation: Operation name (e.g. "activate_member", "update_processing")
        correlation_id: Request/callback identifier
        outcome: "success", "partial_success", "failed", ...
        duration_ms: Duration in milliseconds
        reason: Short non-PII explanation
        level: Log level name
        message: Override for the log message (defaults to component/operation/outcome)
    """
    extra: dict = {
        "component": component,
        "operation": operation,
        "outcome": outcome,
    }
    if correlation_id is not None:
        extra["correlation_id"] = str(correlation_id)
    if duration_ms is not None:
        extra["duration_ms"] = duration_ms
    if reason is not None:
        extra["reason"] = reason

    msg = message or f"{component} {operation} outcome={outcome}"
    if reason is not None and message is None:
        msg = f"{msg} reason={reason}"
    log_method = getattr(logger, level.lower(), logger.info)
    log_method(msg, extra=extra)
