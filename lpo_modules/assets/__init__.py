"""Assets Module (``lpo_modules.assets``): the asset registrar."""

from lpo_modules.assets.models import Asset, AssetStatus, AssetStatusChange
from lpo_modules.assets.workflows import ASSET_WORKFLOW

__all__ = ["ASSET_WORKFLOW", "Asset", "AssetStatus", "AssetStatusChange"]
