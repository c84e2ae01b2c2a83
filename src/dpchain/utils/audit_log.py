"""Audit trail of posted management operations.

One JSON line per post on the ``dpchain.audit`` logger. Nothing is written
to disk until ``setup_audit_logging()`` attaches a file handler.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

audit_logger = logging.getLogger("dpchain.audit")
audit_logger.propagate = False

AUDIT_FILE_NAME = "audit.log"
OUTPUT_LIMIT = 1000


def get_audit_dir(log_dir: Optional[str] = None) -> Path:
    """Audit directory from the argument, DPCHAIN_AUDIT_DIR or ~/.dpchain."""
    if log_dir is None:
        log_dir = os.environ.get("DPCHAIN_AUDIT_DIR", os.path.expanduser("~/.dpchain"))
    return Path(log_dir)


def setup_audit_logging(log_dir: Optional[str] = None) -> Path:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to DPCHAIN_AUDIT_DIR or ~/.dpchain/

    Returns:
        Path of the audit log file
    """
    directory = get_audit_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    audit_file = directory / AUDIT_FILE_NAME

    audit_logger.setLevel(logging.INFO)
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )
    # JSON lines
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    return audit_file


@dataclass
class PostRecord:
    """Record of one posted operation."""
    timestamp: str
    host: str
    operation: str
    domain: Optional[str]
    endpoint: Optional[str]
    severity: str
    success: bool
    checkpoint: Optional[str] = None
    output: str = ""
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "PostRecord":
        return cls(**json.loads(json_str))


class AuditTrail:
    """Writes PostRecords for one appliance session."""

    def __init__(self, host: Optional[str]):
        self.host = host or ""
        self.records: list[PostRecord] = []

    def log_post(
        self,
        operation: str,
        severity: str,
        success: bool,
        domain: Optional[str] = None,
        endpoint: Optional[str] = None,
        checkpoint: Optional[str] = None,
        output: str = "",
        error: Optional[str] = None,
    ) -> PostRecord:
        """Log a posted operation.

        Args:
            operation: Operation name as invoked
            severity: Classified response severity name
            success: Whether the response classified as INFO
            domain: Application domain the operation targeted
            endpoint: Management endpoint posted to
            checkpoint: Active checkpoint name, if any
            output: Parsed response text (truncated)
            error: Error text if the post failed

        Returns:
            The PostRecord that was logged
        """
        record = PostRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            host=self.host,
            operation=operation,
            domain=domain,
            endpoint=endpoint,
            severity=severity,
            success=success,
            checkpoint=checkpoint,
            output=output[:OUTPUT_LIMIT] if output else "",
            error=error,
        )
        self.records.append(record)
        audit_logger.info(record.to_json())
        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    host: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[PostRecord]:
    """Read recent posts from the audit log.

    Args:
        log_file: Path to audit log. Defaults to <audit dir>/audit.log
        host: Filter by appliance host
        operation: Filter by operation name
        limit: Maximum number of records to return

    Returns:
        List of PostRecords, most recent first
    """
    path = Path(log_file) if log_file else get_audit_dir() / AUDIT_FILE_NAME
    if not path.exists():
        return []

    records = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = PostRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if host and record.host != host:
                continue
            if operation and record.operation != operation:
                continue
            records.append(record)

    return list(reversed(records[-limit:])) if limit > 0 else []
