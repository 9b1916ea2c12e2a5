from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import BatchConfig, DatabaseConfig, HierarchyLimits, ImportConfig

"""Config loader.

Responsibilities:
- Load YAML config (config/import.yml by default)
- Validate it against the packaged JSON schema (import_schema.json)
- Apply defaults for the optional batch / hierarchy / database sections
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "load_config",
    "parse_config",
]

SCHEMA_PATH = Path(__file__).with_name("import_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the config data
            fails validation (missing keys, wrong types, unknown keys)
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path)
        prefix = f"{location}: " if location else ""
        raise ConfigError(f"config validation failed: {prefix}{e.message}") from e


def parse_config(data: dict[str, Any]) -> ImportConfig:
    """Build ImportConfig from already-loaded YAML data."""
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    _validate_config_schema(data)

    batch = BatchConfig(**data.get("batch", {}))
    if batch.min_batch_size > batch.max_batch_size:
        raise ConfigError(
            f"config validation failed: batch.min_batch_size ({batch.min_batch_size}) "
            f"exceeds batch.max_batch_size ({batch.max_batch_size})"
        )

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        organization_id=data["organization_id"],
        batch=batch,
        hierarchy=HierarchyLimits(**data.get("hierarchy", {})),
        database=db,
        error_log_dir=data.get("error_log_dir", "./logs"),
    )


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    return parse_config(data)
