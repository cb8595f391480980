"""
Structured logging for the verification pipeline.

Every pipeline event is emitted as a single JSON line so that run history
can be reconstructed from logs by verification_id / submission_id.

Usage:
    from dlc_review.logging_utils import structured_log, StepTimer

    structured_log("INFO", "step_started", verification_id=vid, step="EVALUATE_CONTENT")

    with StepTimer(vid, "RETRIEVE_GUIDELINES") as timer:
        ...
    timer.duration_seconds
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional


logger = logging.getLogger("dlc_review.pipeline")


class JSONFormatter(logging.Formatter):
    """Pass dict payloads through as JSON, format everything else normally."""

    def format(self, record):
        if isinstance(record.msg, dict):
            return json.dumps(record.msg, default=str)
        return super().format(record)


def configure_logging(level: int = logging.INFO, json_output: bool = False) -> None:
    """Configure root logging for scripts and the WSGI entry point."""
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    logging.basicConfig(level=level, handlers=[handler], force=True)


def structured_log(level: str, event: str, **kwargs) -> None:
    """
    Emit structured log message with context.

    Usage:
        structured_log("INFO", "run_started", verification_id="abc", submission_id="xyz")
    """
    log_data = {
        "event": event,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **kwargs
    }
    message = json.dumps(log_data, default=str)

    if level == "DEBUG":
        logger.debug(message)
    elif level == "WARNING":
        logger.warning(message)
    elif level == "ERROR":
        logger.error(message)
    else:
        logger.info(message)


class StepTimer:
    """
    Context manager that times a pipeline step and logs its outcome.

    The measured duration feeds the completion-time estimate, so it is
    recorded even when the step raises.
    """

    def __init__(self, verification_id: str, step: str, **context):
        self.verification_id = verification_id
        self.step = step
        self.context = context
        self.start_time: Optional[float] = None
        self.duration_seconds: float = 0.0

    def __enter__(self):
        self.start_time = time.monotonic()
        structured_log(
            "INFO", "step_started",
            verification_id=self.verification_id, step=self.step, **self.context
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_seconds = time.monotonic() - self.start_time
        structured_log(
            "ERROR" if exc_val else "INFO",
            "step_failed" if exc_val else "step_complete",
            verification_id=self.verification_id,
            step=self.step,
            duration_ms=round(self.duration_seconds * 1000, 2),
            error=str(exc_val) if exc_val else None,
            **self.context
        )
        return False
