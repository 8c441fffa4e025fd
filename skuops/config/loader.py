from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config (default ``config/skuops.yml``)
- Validate against the bundled ``config_schema.json``
- Apply defaults for every optional key
"""

__all__ = [
    "ConfigError",
    "FreshnessConfig",
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "default_config",
]

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/skuops.yml")

DEFAULT_IMPORTABLE = {
    "ProductPrice": "overwrite",
    "RegularProduct": "overwrite",
    "Inventory": "overwrite",
    "ComboProduct": "overwrite",
    "ProductSales": "append",
    "BrandConfig": "overwrite",
}


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class FreshnessConfig:
    default_hours: float = 12
    promotion_regular_product_hours: float = 5


@dataclass(frozen=True)
class AppConfig:
    workbook: str
    staging_table: str = "Import Data"
    log_directory: str = "./logs"
    importable_entities: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_IMPORTABLE))
    freshness: FreshnessConfig = field(default_factory=FreshnessConfig)
    combo_skip_prefixes: tuple[str, ...] = ("YH", "FL")
    default_marketing_positioning: str = "profit-style"


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or data fails validation.
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def default_config(workbook: str) -> AppConfig:
    """Config with every optional key at its default (used by tests and ``inspect``)."""
    return AppConfig(workbook=workbook)


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    fresh_raw = data.get("freshness", {})
    freshness = FreshnessConfig(
        default_hours=fresh_raw.get("default_hours", 12),
        promotion_regular_product_hours=fresh_raw.get("promotion_regular_product_hours", 5),
    )
    return AppConfig(
        workbook=data["workbook"],
        staging_table=data.get("staging_table", "Import Data"),
        log_directory=data.get("log_directory", "./logs"),
        importable_entities=dict(data.get("importable_entities", DEFAULT_IMPORTABLE)),
        freshness=freshness,
        combo_skip_prefixes=tuple(data.get("combo_skip_prefixes", ("YH", "FL"))),
        default_marketing_positioning=data.get("default_marketing_positioning", "profit-style"),
    )
