"""
Tests for the YAML configuration loader.

The packaged defaults drive every other test, so they are pinned here;
overrides and unknown keys are checked against small YAML files.
"""

from decimal import Decimal

import pytest

from lpo_config import (
    CONFIG_PATH_ENV,
    get_active_config,
    load_config,
    reset_active_config,
)
from lpo_config.loader import parse_config


@pytest.fixture
def write_yaml(tmp_path):
    def _write(text: str):
        path = tmp_path / "procurement.yaml"
        path.write_text(text)
        return path

    return _write


class TestDefaults:

    def test_packaged_defaults(self):
        config = load_config()
        assert config.base_currency == "OMR"
        assert config.gm_approval_threshold == Decimal("100")
        assert config.lpo_number_prefix == "LPO"
        assert config.asset_tag_prefix == "FA"
        assert config.roles.final_approver == "FINAL_APPROVER"
        assert "ADMIN" in config.roles.superuser_delegates

    def test_category_lookup_is_case_insensitive(self):
        config = load_config()
        assert config.asset_category("it_equipment").serialized is True
        assert config.asset_category("FURNITURE").serialized is False
        assert config.asset_category("STATIONERY") is None
        assert config.asset_category(None) is None

    def test_integral_units(self):
        config = load_config()
        assert config.is_integral_unit("ea")
        assert not config.is_integral_unit("LTR")

    def test_policy_uses_threshold_and_roles(self):
        policy = load_config().approval_policy
        assert policy.gm_threshold == Decimal("100")
        assert policy.base_currency == "OMR"


class TestOverrides:

    def test_override_file(self, write_yaml):
        config = load_config(write_yaml(
            "gm_approval_threshold: '250.500'\n"
            "roles:\n"
            "  general_manager: ceo\n"
            "  superuser_delegates: [root]\n"
            "asset_categories:\n"
            "  TOOLS: {serialized: false}\n"
        ))
        assert config.gm_approval_threshold == Decimal("250.500")
        assert config.roles.general_manager == "CEO"
        assert config.roles.superuser_delegates == ("ROOT",)
        assert config.asset_category("tools").serialized is False
        assert config.asset_category("IT_EQUIPMENT") is None

    def test_unknown_top_level_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            parse_config({"gm_threshold": 100})

    def test_unknown_role_key_rejected(self):
        with pytest.raises(ValueError):
            parse_config({"roles": {"ceo": "CEO"}})

    def test_unknown_currency_rejected(self):
        with pytest.raises(ValueError):
            parse_config({"base_currency": "XXX"})

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValueError):
            parse_config({"gm_approval_threshold": "-1"})

    def test_bad_decimal_rejected(self):
        with pytest.raises(ValueError):
            parse_config({"gm_approval_threshold": "lots"})


class TestActiveConfig:

    def test_environment_path(self, write_yaml, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(write_yaml("lock_timeout_seconds: 1.5\n")))
        reset_active_config()
        try:
            assert get_active_config().lock_timeout_seconds == 1.5
        finally:
            reset_active_config()

    def test_active_config_is_cached(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        reset_active_config()
        try:
            assert get_active_config() is get_active_config()
        finally:
            reset_active_config()
