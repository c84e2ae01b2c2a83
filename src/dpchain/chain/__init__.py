"""Operation chain model and execution engine."""
from .errors import (
    EXIT_FAILURE,
    EXIT_ROLLED_BACK,
    EXIT_SUCCESS,
    ChainCancelled,
    ChainError,
    ChainRolledBack,
    ClassificationError,
    ConfigError,
    GenerationError,
    PollPredicateInvalid,
    PollTimeout,
    ResponseSeverityError,
    RollbackFailure,
    SchemaLoadError,
    SchemaNotFound,
    TransportError,
)
from .model import (
    Classification,
    ExecuteResult,
    Operation,
    OperationChain,
    OperationKind,
    Option,
    Severity,
)

__all__ = [
    "EXIT_FAILURE",
    "EXIT_ROLLED_BACK",
    "EXIT_SUCCESS",
    "ChainCancelled",
    "ChainError",
    "ChainRolledBack",
    "ClassificationError",
    "ConfigError",
    "GenerationError",
    "PollPredicateInvalid",
    "PollTimeout",
    "ResponseSeverityError",
    "RollbackFailure",
    "SchemaLoadError",
    "SchemaNotFound",
    "TransportError",
    "Classification",
    "ExecuteResult",
    "Operation",
    "OperationChain",
    "OperationKind",
    "Option",
    "Severity",
]
