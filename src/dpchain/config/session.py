"""Session configuration and verbosity."""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .. import constants as C
from ..binding.dialects import firmware_level
from ..chain.errors import ConfigError
from ..chain.model import Severity, parse_bool

logger = logging.getLogger(__name__)


@dataclass
class Verbosity:
    """Per-session output detail.

    Controls how much of option values and XML dumps reach the log. Never
    touches logger levels.
    """
    verbose: bool = False
    debug: bool = False

    @property
    def detailed(self) -> bool:
        return self.verbose or self.debug

    def option_text(self, value: Optional[str]) -> str:
        text = "null" if value is None else value
        if not self.detailed and len(text) > C.OPTION_LOG_THRESHOLD:
            return text[:C.OPTION_LOG_KEEP] + C.TRUNCATED_MARKER
        return text

    def dump_text(self, text: Optional[str]) -> str:
        text = text or ""
        if not self.detailed and len(text) > C.DUMP_LOG_THRESHOLD:
            return text[:C.DUMP_LOG_KEEP] + C.TRUNCATED_MARKER
        return text


@dataclass
class SessionConfig:
    """Everything a deployment session needs besides the operations."""
    host: Optional[str] = None
    port: int = C.DEFAULT_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    domain: Optional[str] = None
    fail_on_error: bool = True
    rollback_on_error: bool = False
    output_type: str = C.DEFAULT_OUTPUT_TYPE
    firmware: Optional[str] = None
    schema_dir: Optional[str] = None
    schema_paths: list[str] = field(default_factory=list)
    netrc_path: Optional[str] = None
    verify_ssl: bool = False
    timeout: float = 60.0
    retries: int = 3
    abort_threshold: Severity = Severity.ERROR
    log_output: bool = True
    verbose: bool = False
    debug: bool = False

    def __post_init__(self):
        self.output_type = self._check_output_type(self.output_type)
        self.abort_threshold = Severity.parse(self.abort_threshold)

    @property
    def firmware_level(self) -> int:
        if self.firmware is None:
            return C.DEFAULT_FIRMWARE_LEVEL
        return firmware_level(self.firmware)

    @property
    def verbosity(self) -> Verbosity:
        return Verbosity(verbose=self.verbose, debug=self.debug)

    @staticmethod
    def _check_output_type(value: str) -> str:
        output_type = str(value).strip().upper()
        if output_type not in C.OUTPUT_TYPES:
            raise ConfigError(
                f"Invalid outputType '{value}'. Expected one of: {', '.join(C.OUTPUT_TYPES)}"
            )
        return output_type

    def set_global_option(self, name: str, value: Any) -> None:
        """Apply a session option by its (case-insensitive) option name.

        Raises:
            ConfigError: for unknown names or unparseable values
        """
        key = name.strip().lower()
        try:
            if key in ("hostname", "host"):
                self.host = value
            elif key == "port":
                self.port = int(value)
            elif key in ("username", "user"):
                self.username = value
            elif key in ("userpassword", "password"):
                self.password = value
            elif key == "domain":
                self.domain = value
            elif key == "failonerror":
                self.fail_on_error = parse_bool(value, default=True)
            elif key == "rollbackonerror":
                self.rollback_on_error = parse_bool(value)
            elif key == "outputtype":
                self.output_type = self._check_output_type(value)
            elif key in ("firmware", "firmwarelevel"):
                self.firmware = str(value)
            elif key == "schema":
                self.schema_paths.append(value)
            elif key == "schemapaths":
                self.schema_paths.extend(value if isinstance(value, list) else [value])
            elif key in ("schemadir", "schemadirectory"):
                self.schema_dir = value
            elif key in ("netrc", "netrcpath", "netrcfilepath"):
                self.netrc_path = value
            elif key == "verifyssl":
                self.verify_ssl = parse_bool(value)
            elif key == "timeout":
                self.timeout = float(value)
            elif key == "retries":
                self.retries = int(value)
            elif key == "abortthreshold":
                self.abort_threshold = Severity.parse(value)
            elif key == "logoutput":
                self.log_output = parse_bool(value, default=True)
            elif key == "verbose":
                self.verbose = parse_bool(value)
            elif key == "debug":
                self.debug = parse_bool(value)
            else:
                raise ConfigError(f"Unknown global option: {name}")
        except ValueError as e:
            raise ConfigError(f"Invalid value for {name}: {value!r} ({e})") from e
        logger.debug(f"Global option {name}={'****' if key in ('userpassword', 'password') else value}")

    @classmethod
    def from_dict(cls, data: dict) -> "SessionConfig":
        """Build from a mapping of option names (camelCase or snake_case)."""
        config = cls()
        for name, value in data.items():
            config.set_global_option(name.replace("_", ""), value)
        return config

    def to_dict(self) -> dict:
        """Convert to dictionary, password masked."""
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": "****" if self.password else None,
            "domain": self.domain,
            "fail_on_error": self.fail_on_error,
            "rollback_on_error": self.rollback_on_error,
            "output_type": self.output_type,
            "firmware": self.firmware,
            "firmware_level": self.firmware_level,
            "schema_dir": self.schema_dir,
            "schema_paths": list(self.schema_paths),
            "verify_ssl": self.verify_ssl,
            "timeout": self.timeout,
            "retries": self.retries,
            "abort_threshold": self.abort_threshold.name,
        }
