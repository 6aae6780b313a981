from decimal import Decimal

import pytest
from pydantic import ValidationError

from swapdesk.config import Settings


def test_defaults_match_documented_breakpoints(monkeypatch):
    """Impact breakpoints default to 1/3/5/15 percent."""

    for name in (
        "PRICE_IMPACT_LOW_PERCENT",
        "PRICE_IMPACT_MEDIUM_PERCENT",
        "PRICE_IMPACT_HIGH_PERCENT",
        "PRICE_IMPACT_BLOCKED_PERCENT",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.impact_breakpoints == (Decimal("1"), Decimal("3"), Decimal("5"), Decimal("15"))


def test_breakpoints_load_from_environment(monkeypatch):
    monkeypatch.setenv("PRICE_IMPACT_BLOCKED_PERCENT", "20")

    settings = Settings()

    assert settings.price_impact_blocked_percent == Decimal("20")


def test_breakpoints_must_ascend(monkeypatch):
    """The override tier must sit below the blocking tier."""

    monkeypatch.setenv("PRICE_IMPACT_HIGH_PERCENT", "25")
    monkeypatch.setenv("PRICE_IMPACT_BLOCKED_PERCENT", "15")

    with pytest.raises(ValidationError):
        Settings()


def test_telemetry_endpoint_flag(monkeypatch):
    monkeypatch.setenv("TELEMETRY_ENDPOINT", "https://collector.example.test/events")

    settings = Settings()

    assert settings.has_telemetry_endpoint is True
    assert settings.describe()["telemetry_endpoint_configured"] is True
    assert "telemetry_endpoint" not in settings.describe()
