"""Management protocol dialects, endpoints and schema file conventions."""
from enum import Enum
from pathlib import Path

from .. import constants as C


class Dialect(str, Enum):
    """XML management protocol variant."""
    SOMA = "soma"
    AMP = "amp"


# Endpoint paths
SOMA_MGMT_CURRENT_URL = "/service/mgmt/current"
SOMA_MGMT_2004_URL = "/service/mgmt/2004"
AMP_MGMT_30_URL = "/service/mgmt/amp/3.0"
AMP_MGMT_DEFAULT_URL = "/service/mgmt/amp/1.0"

# Short aliases accepted by the endPoint option
SOMA_MGMT_SHORT = "current"
SOMA_MGMT_2004_SHORT = "2004"
AMP_MGMT_SHORT = "amp"

# Schema file names
SOMA_MGMT_SCHEMA_NAME = "xml-mgmt.xsd"
SOMA_MGMT_2004_SCHEMA_NAME = "xml-mgmt-2004.xsd"
AMP_MGMT_30_SCHEMA_NAME = "app-mgmt-protocol-v3.xsd"
AMP_MGMT_DEFAULT_SCHEMA_NAME = "app-mgmt-protocol.xsd"

# Namespaces
SOMA_NS = "http://www.datapower.com/schemas/management"
AMP_NS = "http://www.datapower.com/schemas/appliance/management/3.0"
SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"

# Bundled schemas: schemas/<firmware>/<name>
SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"
DEFAULT_SCHEMA_SUBDIR = "default"
# Load order, lowest precedence first: the last schema declaring an operation wins
SCHEMA_LOAD_ORDER = (
    SOMA_MGMT_2004_SCHEMA_NAME,
    SOMA_MGMT_SCHEMA_NAME,
    AMP_MGMT_DEFAULT_SCHEMA_NAME,
    AMP_MGMT_30_SCHEMA_NAME,
)

# Firmware string prefix -> level. Order matters ("2018" before "2...").
FIRMWARE_PREFIXES = (
    ("default", 0),
    ("2018", 2018),
    ("8", 8),
    ("7", 7),
    ("6", 6),
    ("5", 5),
    ("4", 4),
    ("3", 3),
    ("2004", 2004),
)


def endpoint_for_schema(schema_path: "str | Path") -> tuple[Dialect, str]:
    """Dialect and endpoint implied by a schema file name."""
    name = Path(schema_path).name
    if name == SOMA_MGMT_SCHEMA_NAME:
        return Dialect.SOMA, SOMA_MGMT_CURRENT_URL
    if name == SOMA_MGMT_2004_SCHEMA_NAME:
        return Dialect.SOMA, SOMA_MGMT_2004_URL
    if name == AMP_MGMT_30_SCHEMA_NAME:
        return Dialect.AMP, AMP_MGMT_30_URL
    if name == AMP_MGMT_DEFAULT_SCHEMA_NAME:
        return Dialect.AMP, AMP_MGMT_DEFAULT_URL
    return Dialect.SOMA, SOMA_MGMT_CURRENT_URL


def resolve_endpoint_alias(value: str) -> tuple[Dialect, str]:
    """Resolve an endPoint option value to (dialect, path)."""
    key = value.strip()
    if key.lower() == SOMA_MGMT_2004_SHORT:
        return Dialect.SOMA, SOMA_MGMT_2004_URL
    if key.lower() in (SOMA_MGMT_SHORT, "soma"):
        return Dialect.SOMA, SOMA_MGMT_CURRENT_URL
    if key.lower() == AMP_MGMT_SHORT:
        return Dialect.AMP, AMP_MGMT_30_URL
    dialect = Dialect.AMP if "mgmt/amp" in key else Dialect.SOMA
    return dialect, key


def firmware_level(firmware: str) -> int:
    """Map a firmware string to its integer level.

    Unrecognised values fall back to DEFAULT_FIRMWARE_LEVEL.
    """
    value = (firmware or "").strip()
    for prefix, level in FIRMWARE_PREFIXES:
        if value.startswith(prefix):
            return level
    return C.DEFAULT_FIRMWARE_LEVEL


def schema_directory(firmware: str, schema_root: "str | Path | None" = None) -> Path:
    """Directory holding the schemas for a firmware string.

    Levels 3 and above use ``<root>/<firmware>/``; lower levels and missing
    directories use ``<root>/default/``.
    """
    root = Path(schema_root) if schema_root else SCHEMAS_DIR
    default_dir = root / DEFAULT_SCHEMA_SUBDIR
    if firmware_level(firmware) >= 3 and firmware:
        candidate = root / firmware
        if candidate.is_dir():
            return candidate
    return default_dir
