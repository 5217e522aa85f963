"""
Procurement configuration (``lpo_config``).

The single runtime entry point is ``get_active_config()``.  It loads the
file named by the ``LPO_CONFIG_PATH`` environment variable, or the packaged
``default.yaml`` when the variable is unset, and caches the result for the
life of the process.
"""

import os
import threading

from lpo_config.loader import load_config
from lpo_config.schema import AssetCategoryDef, ProcurementConfig, RoleConfig

CONFIG_PATH_ENV = "LPO_CONFIG_PATH"

_active: ProcurementConfig | None = None
_lock = threading.Lock()


def get_active_config() -> ProcurementConfig:
    global _active
    with _lock:
        if _active is None:
            _active = load_config(os.environ.get(CONFIG_PATH_ENV))
        return _active


def set_active_config(config: ProcurementConfig) -> None:
    """Install ``config`` as the process-wide configuration. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = config


def reset_active_config() -> None:
    global _active
    with _lock:
        _active = None


__all__ = [
    "CONFIG_PATH_ENV",
    "AssetCategoryDef",
    "ProcurementConfig",
    "RoleConfig",
    "get_active_config",
    "load_config",
    "reset_active_config",
    "set_active_config",
]
