"""Severity-driven error policy."""
from dataclasses import dataclass
from enum import Enum

from .. import constants as C
from .model import Operation, Severity

# Operations that must never trigger a rollback themselves
CHECKPOINT_CONTROL_OPS = (C.SAVE_CHECKPOINT_OP_NAME, C.ROLLBACK_CHECKPOINT_OP_NAME)


class Decision(str, Enum):
    CONTINUE = "continue"
    WARN = "warn"
    ROLLBACK = "rollback"
    ABORT = "abort"


@dataclass
class ErrorPolicy:
    """What to do with a classified response.

    Severities at or above ``abort_threshold`` stop the chain when running
    fail-fast and the operation's own failOnError is set; everything else
    above INFO is reported as a warning.
    """
    fail_on_error: bool = True
    abort_threshold: Severity = Severity.ERROR

    def decide(self, severity: Severity, operation: Operation, checkpoint_active: bool) -> Decision:
        if severity <= Severity.INFO:
            return Decision.CONTINUE
        if severity >= self.abort_threshold and self.fail_on_error and operation.fail_flag:
            if checkpoint_active and operation.name not in CHECKPOINT_CONTROL_OPS:
                return Decision.ROLLBACK
            return Decision.ABORT
        return Decision.WARN
