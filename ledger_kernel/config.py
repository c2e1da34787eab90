"""
Module: ledger_kernel.config
Responsibility: Runtime configuration for the ledger kernel.  A single frozen
    ``LedgerConfig`` carries database, reference-allocation, validation and
    logging settings.  Values come from defaults, then an optional YAML file,
    then ``LEDGER_*`` environment variables (``DATABASE_URL`` is honoured for
    the database URL).
Architecture position: Kernel top level.  Imported by db/engine.py callers,
    services and tests.  MUST NOT import from models/, services/ or selectors/.

Failure modes:
    - FileNotFoundError if an explicit config path does not exist.
    - yaml.YAMLError on malformed YAML.
    - ValueError on unknown keys or values that cannot be coerced.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from ledger_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_DATABASE_URL = "sqlite:///ledger_kernel.db"

ENV_PREFIX = "LEDGER_"


@dataclass(frozen=True)
class LedgerConfig:
    """Settings for one ledger deployment."""

    database_url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    # Seconds SQLite waits on a locked database before raising
    sqlite_busy_timeout: float = 30.0
    reference_prefix: str = "TXN"
    reference_max_attempts: int = 10
    # Reject lines that carry both a debit and a credit amount
    strict_line_sides: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.reference_max_attempts < 1:
            raise ValueError("reference_max_attempts must be at least 1")
        if not self.reference_prefix or "-" in self.reference_prefix:
            raise ValueError(
                f"reference_prefix must be non-empty and contain no '-': "
                f"{self.reference_prefix!r}"
            )


def _coerce(name: str, raw: Any, target: Any) -> Any:
    """Coerce a YAML/env value to the type of the field default."""
    if isinstance(target, bool):
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"Invalid boolean for {name}: {raw!r}")
    if isinstance(target, int):
        return int(raw)
    if isinstance(target, float):
        return float(raw)
    return str(raw)


def config_from_mapping(
    values: Mapping[str, Any],
    base: LedgerConfig | None = None,
) -> LedgerConfig:
    """Build a config from a plain mapping, layered over ``base``.

    Raises:
        ValueError: If the mapping contains a key that is not a config field.
    """
    base = base or LedgerConfig()
    known = {f.name: getattr(base, f.name) for f in fields(LedgerConfig)}
    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ValueError(f"Unknown ledger config keys: {', '.join(unknown)}")
    changes = {
        key: _coerce(key, raw, known[key]) for key, raw in values.items()
    }
    return replace(base, **changes)


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load the ``ledger`` section (or the whole document) of a YAML file."""
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    section = data.get("ledger", data)
    if not isinstance(section, dict):
        raise ValueError(f"'ledger' section in {path} must be a mapping")
    return section


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    if "DATABASE_URL" in environ:
        overrides["database_url"] = environ["DATABASE_URL"]
    field_names = {f.name for f in fields(LedgerConfig)}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in field_names:
            overrides[name] = value
    return overrides


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """
    Resolve the active configuration.

    Preconditions: ``path`` (or ``LEDGER_CONFIG_FILE``) names a readable YAML
        file when given.
    Postconditions: Returns a validated ``LedgerConfig``.  Environment values
        win over file values, which win over defaults.
    """
    environ = os.environ if environ is None else environ
    config = LedgerConfig()

    config_path = path or environ.get("LEDGER_CONFIG_FILE")
    if config_path:
        config = config_from_mapping(load_yaml_config(Path(config_path)), config)

    config = config_from_mapping(_env_overrides(environ), config)

    logger.debug(
        "config_loaded",
        extra={
            "config_file": str(config_path) if config_path else None,
            "dialect": config.database_url.split(":", 1)[0],
            "reference_prefix": config.reference_prefix,
            "reference_max_attempts": config.reference_max_attempts,
            "strict_line_sides": config.strict_line_sides,
        },
    )
    return config
