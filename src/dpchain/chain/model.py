"""Data model for operation chains.

Defines options, operations, the chain itself and the result types that
flow back out of execution.
"""
import base64
import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Iterator, Optional

from .. import constants as C
from ..binding.dialects import Dialect, resolve_endpoint_alias
from .errors import ConfigError, GenerationError

if TYPE_CHECKING:
    from .custom_ops import CustomOperationHook

logger = logging.getLogger(__name__)


class Severity(IntEnum):
    """Ordered classification of an appliance response."""
    INFO = 20
    WARN = 30
    ERROR = 40
    FATAL = 50

    @property
    def log_level(self) -> int:
        """Matching stdlib logging level."""
        if self is Severity.FATAL:
            return logging.CRITICAL
        if self is Severity.WARN:
            return logging.WARNING
        return int(self)

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        """Parse a severity name (case-insensitive, WARNING accepted)."""
        if isinstance(value, Severity):
            return value
        name = str(value).strip().upper()
        if name == "WARNING":
            name = "WARN"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Invalid severity: {value}") from None


class OperationKind(str, Enum):
    """Whether an operation posts directly or expands through a hook."""
    NATIVE = "native"
    COMPOSITE = "composite"


def parse_bool(value: "str | bool | None", default: bool = False) -> bool:
    """Parse 'true'/'false' option strings."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == C.TRUE_OPT_VALUE


def _int_value(name: str, value: Optional[str]) -> int:
    try:
        return int(str(value).strip())
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {value!r} (expected a whole number)") from e


def _required(name: str, value: Optional[str]) -> str:
    # An empty wait condition would match any response
    if value is None or not str(value).strip():
        raise ConfigError(f"Option {name} requires a non-empty value")
    return value


@dataclass
class Option:
    """A named document value, or a file whose base64 contents are the value."""
    name: str
    value: Optional[str] = None
    source_file: Optional[str] = None

    def resolve_value(self) -> Optional[str]:
        """Return the value to write, reading source_file now if set."""
        if self.source_file is None:
            return self.value
        try:
            with open(self.source_file, "rb") as f:
                return base64.b64encode(f.read()).decode("ascii")
        except OSError as e:
            raise GenerationError(
                f"Failed to read source file '{self.source_file}' "
                f"for option '{self.name}': {e}"
            ) from e


@dataclass(eq=False)
class Operation:
    """A single protocol action and everything needed to post it."""
    name: str
    kind: OperationKind = OperationKind.NATIVE
    hook: Optional["CustomOperationHook"] = None
    # Composite hook that spawned this operation, if any
    parent: Optional["CustomOperationHook"] = None
    domain: Optional[str] = None
    endpoint: Optional[str] = None
    dialect: Optional[Dialect] = None
    options: list[Option] = field(default_factory=list)
    payload: Optional[str] = None
    response: Optional[str] = None
    fail_flag: bool = True
    fail_state: Optional[str] = None
    suppress_response: bool = False
    mem_safe: bool = False
    wait_for: Optional[str] = None
    wait_for_xpath: Optional[str] = None
    wait_time_seconds: int = C.DEFAULT_WAIT_TIME_SECONDS
    poll_interval_millis: int = C.DEFAULT_POLL_INT_MILLIS
    filter: Optional[str] = None
    filter_out: Optional[str] = None
    src_file: Optional[str] = None
    dest_file: Optional[str] = None
    src_dir: Optional[str] = None
    dest_dir: Optional[str] = None

    @property
    def invoked_name(self) -> str:
        """Name as the caller wrote it (composite name if any)."""
        if self.hook is not None:
            return self.hook.name
        if self.parent is not None:
            return self.parent.name
        return self.name

    @property
    def is_composite(self) -> bool:
        return self.kind is OperationKind.COMPOSITE

    @property
    def is_polling(self) -> bool:
        return self.wait_for is not None or self.wait_for_xpath is not None

    @property
    def is_amp(self) -> bool:
        return self.dialect is Dialect.AMP

    # === Options ===

    def add_option(
        self,
        name: str,
        value: Optional[str] = None,
        source_file: Optional[str] = None,
    ) -> Optional[Option]:
        """Append an option.

        Functional options (endPoint, filter, srcFile, waitFor, ...) update
        the operation instead of the document and return None, except where
        they translate into a document option.
        """
        if source_file is None and self._apply_functional_option(name, value):
            return None
        option = Option(name=name, value=value, source_file=source_file)
        self.options.append(option)
        return option

    def get_option(self, name: str) -> Optional[Option]:
        """Most recently added option with this name."""
        for option in reversed(self.options):
            if option.name == name:
                return option
        return None

    def get_option_value(self, name: str) -> Optional[str]:
        """Most recently added value for this option name."""
        option = self.get_option(name)
        return option.value if option else None

    def _apply_functional_option(self, name: str, value: Optional[str]) -> bool:
        key = name.lower()

        if key == C.END_POINT_OPT_NAME.lower():
            self.set_endpoint(value or "")
        elif key == C.FILTER_OPT_NAME.lower():
            self.add_filter(value)
        elif key == C.FILTER_OUT_OPT_NAME.lower():
            self.add_filter_out(value)
        elif key == C.SRC_FILE_OPT_NAME.lower():
            self.set_src_file(value)
        elif key == C.DEST_FILE_OPT_NAME.lower():
            self.set_dest_file(value)
        elif key == C.SRC_DIR_OPT_NAME.lower():
            self.src_dir = _normalise_dir(value)
        elif key == C.DEST_DIR_OPT_NAME.lower():
            self.dest_dir = _normalise_dir(value)
        elif key == C.FAIL_STATE_OPT_NAME.lower():
            self.fail_state = value
        elif key == C.FAIL_ON_ERROR_OPT_NAME.lower():
            self.fail_flag = parse_bool(value, default=True)
        elif key == C.WAIT_FOR_OPT_NAME.lower():
            self.wait_for = _required(name, value)
        elif key == C.WAIT_FOR_XPATH_OPT_NAME.lower():
            self.wait_for_xpath = _required(name, value)
        elif key == C.WAIT_TIME_OPT_NAME.lower():
            self.wait_time_seconds = _int_value(name, value)
        elif key == C.POLL_INT_OPT_NAME.lower():
            self.poll_interval_millis = _int_value(name, value)
        elif key == C.MEM_SAFE_OPT_NAME.lower():
            self.mem_safe = parse_bool(value)
        elif key == C.SUPPRESS_RESPONSE_OPT_NAME.lower():
            self.suppress_response = parse_bool(value)
        else:
            if self.hook is not None:
                return self.hook.add_custom_option(name, value)
            return False
        return True

    def add_filter(self, pattern: Optional[str]) -> None:
        if pattern:
            self.filter = f"{self.filter}|{pattern}" if self.filter else pattern

    def add_filter_out(self, pattern: Optional[str]) -> None:
        if pattern:
            self.filter_out = (
                f"{self.filter_out}|{pattern}" if self.filter_out else pattern
            )

    def set_src_file(self, path: Optional[str]) -> None:
        """Attach a local file as the operation's upload content."""
        if path is None:
            return
        self.src_file = path
        if self.name == C.GET_FILE_OP_NAME:
            self.options.append(Option(f"{self.name}@{C.NAME_OPT_NAME}", path))
        elif self.name == C.DO_IMPORT_OP_NAME:
            self.options.append(Option(C.INPUT_FILE_OPT_NAME, source_file=path))
        else:
            self.options.append(Option(self.name, source_file=path))

    def set_dest_file(self, path: Optional[str]) -> None:
        """Set the download target, or the remote name for set-file."""
        if path is None:
            return
        if self.name == C.SET_FILE_OP_NAME:
            self.options.append(Option(f"{self.name}@{C.NAME_OPT_NAME}", path))
        else:
            self.dest_file = path

    # === Domain and endpoint ===

    def set_domain(self, domain: Optional[str]) -> None:
        """Explicit per-operation domain; recorded as a domain option."""
        if domain is not None and domain != self.domain:
            self.domain = domain
            self.options.append(Option(C.DOMAIN_OPT_NAME, domain))

    def update_domain(self, domain: Optional[str]) -> None:
        if domain is not None:
            self.domain = domain

    def set_endpoint(self, value: str) -> None:
        """Override the endpoint with an alias or a literal path."""
        self.dialect, self.endpoint = resolve_endpoint_alias(value)

    def bind_endpoint(self, dialect: Dialect, endpoint: str) -> None:
        """Bind dialect and endpoint once; later calls are no-ops."""
        if self.endpoint is None:
            self.endpoint = endpoint
            self.dialect = dialect

    def effective_domain(self, default: Optional[str]) -> Optional[str]:
        return self.domain if self.domain is not None else default

    def reset_payload(self) -> None:
        self.payload = None

    def __repr__(self) -> str:
        return f"Operation({self.invoked_name!r}, options={len(self.options)})"


def _normalise_dir(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    path = path.replace("\\", "/")
    return path if path.endswith("/") else path + "/"


class OperationChain:
    """Ordered, in-place mutable sequence of operations.

    ``walk()`` tolerates removal of the current (or any earlier) operation
    and insertion at the front while it is running.
    """

    def __init__(self, operations: Optional[list[Operation]] = None):
        self._operations: list[Operation] = list(operations or [])
        self._cursor: Optional[int] = None

    def __len__(self) -> int:
        return len(self._operations)

    def __getitem__(self, index: int) -> Operation:
        return self._operations[index]

    def __iter__(self) -> Iterator[Operation]:
        return iter(list(self._operations))

    def __contains__(self, operation: object) -> bool:
        return self.index_of(operation) is not None

    @property
    def names(self) -> list[str]:
        return [op.invoked_name for op in self._operations]

    def append(self, operation: Operation) -> None:
        self._operations.append(operation)

    def insert(self, index: int, operation: Operation) -> None:
        self._operations.insert(index, operation)
        if self._cursor is not None and index <= self._cursor:
            self._cursor += 1

    def index_of(self, operation: object) -> Optional[int]:
        for i, op in enumerate(self._operations):
            if op is operation:
                return i
        return None

    def remove(self, operation: Operation) -> bool:
        """Remove an operation permanently. Returns False if not present."""
        index = self.index_of(operation)
        if index is None:
            return False
        del self._operations[index]
        if self._cursor is not None and index <= self._cursor:
            self._cursor -= 1
        return True

    def clear(self) -> None:
        self._operations.clear()

    def walk(self) -> Iterator[Operation]:
        """Iterate in order while the chain is being mutated."""
        self._cursor = 0
        try:
            while self._cursor < len(self._operations):
                yield self._operations[self._cursor]
                self._cursor += 1
        finally:
            self._cursor = None


@dataclass
class Classification:
    """Severity and message parsed from a response."""
    severity: Severity
    message: str

    @property
    def success(self) -> bool:
        return self.severity <= Severity.INFO


@dataclass
class ExecuteResult:
    """Outcome of one chain execution."""
    success: bool = False
    exit_code: int = 1
    operations_posted: list[str] = field(default_factory=list)
    operations_removed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    checkpoint: Optional[str] = None
    rolled_back: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "operations_posted": self.operations_posted,
            "operations_removed": self.operations_removed,
            "warnings": self.warnings,
            "checkpoint": self.checkpoint,
            "rolled_back": self.rolled_back,
            "error": self.error,
        }
