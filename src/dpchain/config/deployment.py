"""Deployment definitions from YAML.

A deployment file holds session options at the top level and the
operation chain under ``operations``:

```yaml
hostName: dp-dev-01
domain: SANDBOX
rollbackOnError: true
operations:
  - name: set-file
    srcFile: build/transform.xsl
    destFile: local:///transform.xsl
  - name: do-import
    srcFile: build/export.zip
    options:
      source-type: ZIP
      overwrite-objects: true
  - name: get-status
    class: ActiveUsers
    waitFor: admin
    waitTime: 10
  - name: SaveConfig
```

Keys of an operation other than ``name`` and ``options`` are options too.
``options`` is a mapping (a list value adds one option per item) or a list
of ``{name, value}`` / ``{name, srcFile}`` entries.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ..chain.errors import ConfigError

logger = logging.getLogger(__name__)

OPERATIONS_KEY = "operations"


@dataclass
class OptionSpec:
    """One option as written in a deployment file."""
    name: str
    value: Optional[str] = None
    src_file: Optional[str] = None


@dataclass
class OperationSpec:
    """One operation as written in a deployment file."""
    name: str
    options: list[OptionSpec] = field(default_factory=list)


@dataclass
class Deployment:
    """Session options plus the operations to chain."""
    path: Optional[str] = None
    global_options: dict[str, Any] = field(default_factory=dict)
    operations: list[OperationSpec] = field(default_factory=list)


def _scalar(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_options(raw: Any, op_name: str) -> list[OptionSpec]:
    options: list[OptionSpec] = []
    if raw is None:
        return options
    if isinstance(raw, dict):
        for name, value in raw.items():
            values = value if isinstance(value, list) else [value]
            for item in values:
                options.append(OptionSpec(str(name), _scalar(item)))
        return options
    if isinstance(raw, list):
        for entry in raw:
            if not isinstance(entry, dict) or "name" not in entry:
                raise ConfigError(
                    f"Operation '{op_name}': each option must be a mapping with a 'name'"
                )
            src_file = entry.get("srcFile", entry.get("src_file"))
            options.append(
                OptionSpec(str(entry["name"]), _scalar(entry.get("value")), _scalar(src_file))
            )
        return options
    raise ConfigError(f"Operation '{op_name}': 'options' must be a mapping or a list")


def parse_deployment(data: Any, path: Optional[str] = None) -> Deployment:
    """Build a Deployment from already-loaded YAML data.

    Raises:
        ConfigError: if the structure is invalid
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Deployment {path or ''} must be a mapping at the top level")

    data = dict(data)
    raw_operations = data.pop(OPERATIONS_KEY, None) or []
    if not isinstance(raw_operations, list):
        raise ConfigError(f"'{OPERATIONS_KEY}' must be a list")

    deployment = Deployment(path=path, global_options=data)
    for index, entry in enumerate(raw_operations):
        if isinstance(entry, str):
            deployment.operations.append(OperationSpec(entry))
            continue
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ConfigError(f"Operation #{index + 1} has no 'name'")
        entry = dict(entry)
        name = str(entry.pop("name"))
        raw_options = entry.pop("options", None)
        spec = OperationSpec(name)
        for key, value in entry.items():
            for item in value if isinstance(value, list) else [value]:
                spec.options.append(OptionSpec(str(key), _scalar(item)))
        spec.options.extend(_parse_options(raw_options, name))
        deployment.operations.append(spec)

    logger.debug(
        f"Parsed deployment {path or '<inline>'}: {len(deployment.operations)} operations, "
        f"{len(deployment.global_options)} global options"
    )
    return deployment


def load_deployment(path: "str | Path") -> Deployment:
    """Load a deployment YAML file.

    Raises:
        ConfigError: if the file cannot be read or parsed
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Could not read deployment file '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in deployment file '{path}': {e}") from e
    return parse_deployment(data, str(path))


def is_deployment_file(token: str) -> bool:
    """Whether a command line token names an existing YAML file."""
    return token.lower().endswith((".yaml", ".yml")) and Path(token).is_file()
