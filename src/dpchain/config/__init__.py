"""Session, credential and deployment configuration."""
from .credentials import Credentials, from_netrc, resolve_credentials
from .deployment import Deployment, OperationSpec, OptionSpec, load_deployment, parse_deployment
from .session import SessionConfig, Verbosity

__all__ = [
    "Credentials",
    "from_netrc",
    "resolve_credentials",
    "Deployment",
    "OperationSpec",
    "OptionSpec",
    "load_deployment",
    "parse_deployment",
    "SessionConfig",
    "Verbosity",
]
