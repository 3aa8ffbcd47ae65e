# daqble/app/config.py
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from daqble.core.errors import ConfigError
from daqble.protocol.defs import WRITE_RETRY_DELAY_S


@dataclass(frozen=True)
class DaqConfig:
    driver: str = "ble"
    address: Optional[str] = None
    transport: Dict[str, Any] = field(default_factory=dict)
    write_retry_delay_s: float = WRITE_RETRY_DELAY_S
    connect_timeout_s: float = 15.0
    record_path: Optional[str] = None
    trace_path: Optional[str] = None
    log_file: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)

    def with_overrides(self, **overrides: Any) -> "DaqConfig":
        """Return a copy with every non-None override applied (CLI flags win over the file)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


_FIELD_NAMES = tuple(f.name for f in fields(DaqConfig))


def config_from_mapping(doc: Mapping[str, Any]) -> DaqConfig:
    unknown = sorted(set(doc) - set(_FIELD_NAMES))
    if unknown:
        raise ConfigError(
            f"Unknown config key(s): {', '.join(unknown)}.",
            hint=f"Valid keys: {', '.join(_FIELD_NAMES)}",
            details={"unknown": unknown},
        )

    values: Dict[str, Any] = dict(doc)

    for name in ("transport", "settings"):
        if name in values:
            if values[name] is None:
                values[name] = {}
            elif not isinstance(values[name], dict):
                raise ConfigError(f"Config '{name}' must be a mapping.", details={"value": values[name]})

    for name in ("write_retry_delay_s", "connect_timeout_s"):
        if name in values:
            v = values[name]
            if isinstance(v, bool) or not isinstance(v, (int, float)) or v < 0:
                raise ConfigError(f"Config '{name}' must be a non-negative number.", details={"value": v})
            values[name] = float(v)

    for name in ("driver", "address", "record_path", "trace_path", "log_file"):
        v = values.get(name)
        if v is not None and not isinstance(v, str):
            raise ConfigError(f"Config '{name}' must be a string.", details={"value": v})

    return DaqConfig(**values)


def load_config(path: str | Path) -> DaqConfig:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}.", hint=str(e)) from None

    if not isinstance(doc, dict):
        raise ConfigError(f"Config file {path} must contain a mapping.")
    return config_from_mapping(doc)
