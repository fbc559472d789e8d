"""
Policy snapshot tests.

Verifies:
- string flags from config overrides or the environment parse as booleans
- unknown flag strings are rejected instead of read as True
"""

import pytest

from repairdesk import create_app
from repairdesk.config import parse_bool
from repairdesk.context import Policy, current_policy


class TestParseBool:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("false", False),
            ("0", False),
            ("Off", False),
            ("", False),
            ("true", True),
            (" YES ", True),
            ("1", True),
            (True, True),
            (False, False),
            (1, True),
            (0, False),
        ],
    )
    def test_values(self, value, expected):
        assert parse_bool(value, default=not expected) is expected

    def test_none_uses_default(self):
        assert parse_bool(None, True) is True
        assert parse_bool(None, False) is False

    def test_unknown_string_rejected(self):
        with pytest.raises(ValueError):
            parse_bool("maybe", True)


class TestPolicyFromConfig:

    def test_string_false_flags_stay_false(self):
        policy = Policy.from_config({"REQUIRE_RETURN_APPROVAL": "false", "AUTO_RESTOCK_ON_RETURN": "0"})
        assert policy.require_return_approval is False
        assert policy.auto_restock_on_return is False

    def test_string_true_flags(self):
        policy = Policy.from_config({
            "ALLOW_PARTIAL_REFUNDS": "no",
            "ALLOW_NEGATIVE_STOCK": "true",
            "RETURN_WINDOW_DAYS": "14",
        })
        assert policy.allow_partial_refunds is False
        assert policy.allow_negative_stock is True
        assert policy.return_window_days == 14

    def test_missing_keys_use_defaults(self):
        assert Policy.from_config({}) == Policy()

    def test_app_override_strings_reach_current_policy(self):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "REQUIRE_RETURN_APPROVAL": "false",
            "AUTO_RESTOCK_ON_RETURN": "1",
        })
        with app.app_context():
            policy = current_policy()
        assert policy.require_return_approval is False
        assert policy.auto_restock_on_return is True

    def test_env_flags(self, monkeypatch):
        from repairdesk import config

        monkeypatch.setenv("REQUIRE_RETURN_APPROVAL", "false")
        assert config._env_bool("REQUIRE_RETURN_APPROVAL", True) is False
        monkeypatch.delenv("REQUIRE_RETURN_APPROVAL")
        assert config._env_bool("REQUIRE_RETURN_APPROVAL", True) is True
