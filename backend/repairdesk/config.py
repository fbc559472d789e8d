# backend/repairdesk/config.py
from __future__ import annotations
import os


TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off", ""}


def parse_bool(value, default: bool) -> bool:
    """Read a config flag that may arrive as a bool, an int or a string."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ValueError(f"Not a boolean flag: {value!r}")


def _env_bool(name: str, default: bool) -> bool:
    return parse_bool(os.environ.get(name), default)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///repairdesk.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Warranty / inventory policy. Snapshotted once per request into a Policy.
    RETURN_WINDOW_DAYS = int(os.environ.get("RETURN_WINDOW_DAYS", "30"))
    REQUIRE_RETURN_APPROVAL = _env_bool("REQUIRE_RETURN_APPROVAL", True)
    ALLOW_PARTIAL_REFUNDS = _env_bool("ALLOW_PARTIAL_REFUNDS", True)
    AUTO_RESTOCK_ON_RETURN = _env_bool("AUTO_RESTOCK_ON_RETURN", False)
    ALLOW_NEGATIVE_STOCK = _env_bool("ALLOW_NEGATIVE_STOCK", False)
