"""Logging, retry and audit helpers."""
from .audit_log import AuditTrail, PostRecord, get_recent_changes, setup_audit_logging
from .connection import RETRYABLE_EXCEPTIONS, with_retry
from .logging_config import PostTimings, perf_logger, setup_logging, timed_section

__all__ = [
    "AuditTrail",
    "PostRecord",
    "get_recent_changes",
    "setup_audit_logging",
    "RETRYABLE_EXCEPTIONS",
    "with_retry",
    "PostTimings",
    "perf_logger",
    "setup_logging",
    "timed_section",
]
