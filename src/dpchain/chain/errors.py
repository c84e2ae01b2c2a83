"""Error classes for chain execution.

Every error carries the process exit code it maps to. Components raise
these; only the session driver turns them into an exit status.

Propagation contract:
- SchemaNotFound / GenerationError: operation-local unless fail-fast
- ResponseSeverityError / PollTimeout: eligible for checkpoint rollback
- RollbackFailure: always terminal
- ChainRolledBack: terminal, exit status 2
"""
from typing import Optional

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_ROLLED_BACK = 2


class ChainError(Exception):
    """Base exception for dpchain."""

    exit_code = EXIT_FAILURE

    def __init__(self, message: str, operation: Optional[str] = None):
        self.message = message
        self.operation = operation
        super().__init__(message)


class SchemaNotFound(ChainError):
    """No loaded schema declares the operation."""

    def __init__(self, operation: str):
        super().__init__(
            f"No such operation '{operation}' available in the loaded "
            f"versions of SOMA and/or AMP schemas.",
            operation=operation,
        )


class SchemaLoadError(ChainError):
    """A schema file could not be read or parsed."""
    pass


class GenerationError(ChainError):
    """The bound document rejected a value, or a source file was unreadable."""
    pass


class TransportError(ChainError):
    """Network or TLS failure talking to the appliance.

    The transport converts this into a surrogate response so it flows
    through the classifier like any other result.
    """
    pass


class ClassificationError(ChainError):
    """Response could not be parsed into a severity and message."""
    pass


class ResponseSeverityError(ChainError):
    """A well-formed response that reports a logical failure."""

    def __init__(self, message: str, severity, operation: Optional[str] = None):
        self.severity = severity
        super().__init__(message, operation=operation)


class PollTimeout(ResponseSeverityError):
    """Wait condition not met within the operation's time budget."""
    pass


class PollPredicateInvalid(ChainError):
    """The waitForXPath expression does not compile."""
    pass


class RollbackFailure(ChainError):
    """Rollback to the checkpoint was attempted and failed."""

    def __init__(self, checkpoint: str, cause: str, operation: Optional[str] = None):
        self.checkpoint = checkpoint
        self.cause = cause
        super().__init__(
            f"Rollback to checkpoint {checkpoint} was UNSUCCESSFUL after: {cause}",
            operation=operation,
        )


class ChainRolledBack(ChainError):
    """A fatal response was rolled back to the checkpoint successfully."""

    exit_code = EXIT_ROLLED_BACK

    def __init__(self, checkpoint: str, cause: str, operation: Optional[str] = None):
        self.checkpoint = checkpoint
        self.cause = cause
        super().__init__(
            f"Deployment rolled back to checkpoint {checkpoint}: {cause}",
            operation=operation,
        )


class ChainCancelled(ChainError):
    """Execution was cancelled from outside (signal, shutdown)."""
    pass


class ConfigError(ChainError):
    """Invalid session or deployment configuration."""
    pass
