"""
Configuration Loader (``lpo_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a frozen
``ProcurementConfig``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from lpo_config.schema import AssetCategoryDef, ProcurementConfig, RoleConfig
from lpo_kernel.domain.currency import CurrencyRegistry
from lpo_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default.yaml")

_TOP_LEVEL_KEYS = frozenset({
    "base_currency",
    "default_currency",
    "gm_approval_threshold",
    "roles",
    "asset_categories",
    "integral_units",
    "lpo_number_prefix",
    "asset_tag_prefix",
    "lock_timeout_seconds",
})

_ROLE_KEYS = frozenset({
    "head_of_department",
    "general_manager",
    "final_approver",
    "superuser_delegates",
    "receivers",
    "asset_managers",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: not a decimal: {value!r}") from exc


def _upper_tuple(values: Any, key: str) -> tuple[str, ...]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        raise ValueError(f"{key}: expected a list, got {type(values).__name__}")
    return tuple(str(v).strip().upper() for v in values)


def parse_roles(data: dict[str, Any]) -> RoleConfig:
    unknown = set(data) - _ROLE_KEYS
    if unknown:
        raise ValueError(f"roles: unknown keys {sorted(unknown)}")
    kwargs: dict[str, Any] = {}
    for key in ("head_of_department", "general_manager", "final_approver"):
        if key in data:
            kwargs[key] = str(data[key]).strip().upper()
    for key in ("superuser_delegates", "receivers", "asset_managers"):
        if key in data:
            kwargs[key] = _upper_tuple(data[key], f"roles.{key}")
    return RoleConfig(**kwargs)


def parse_asset_categories(data: dict[str, Any]) -> tuple[AssetCategoryDef, ...]:
    categories = []
    for code, spec in (data or {}).items():
        spec = spec or {}
        categories.append(
            AssetCategoryDef(
                code=str(code).strip().upper(),
                serialized=bool(spec.get("serialized", True)),
            )
        )
    return tuple(categories)


def parse_config(data: dict[str, Any]) -> ProcurementConfig:
    """Build a ``ProcurementConfig`` from a parsed YAML mapping."""
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key in ("base_currency", "default_currency"):
        if key in data:
            kwargs[key] = CurrencyRegistry.validate(data[key])
    if "gm_approval_threshold" in data:
        kwargs["gm_approval_threshold"] = parse_decimal(
            data["gm_approval_threshold"], "gm_approval_threshold"
        )
    if "roles" in data:
        kwargs["roles"] = parse_roles(data["roles"] or {})
    if "asset_categories" in data:
        kwargs["asset_categories"] = parse_asset_categories(data["asset_categories"])
    if "integral_units" in data:
        kwargs["integral_units"] = frozenset(
            _upper_tuple(data["integral_units"], "integral_units")
        )
    for key in ("lpo_number_prefix", "asset_tag_prefix"):
        if key in data:
            kwargs[key] = str(data[key]).strip()
    if "lock_timeout_seconds" in data:
        kwargs["lock_timeout_seconds"] = float(data["lock_timeout_seconds"])

    return ProcurementConfig(**kwargs)


def load_config(path: Path | str | None = None) -> ProcurementConfig:
    """Load configuration from ``path`` (default: the packaged default.yaml)."""
    resolved = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(resolved))
    logger.info(
        "procurement_config_loaded",
        extra={
            "path": str(resolved),
            "base_currency": config.base_currency,
            "gm_approval_threshold": str(config.gm_approval_threshold),
            "asset_category_count": len(config.asset_categories),
        },
    )
    return config
