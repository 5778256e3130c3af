"""Unit tests for middlesman/config.py defaults and computed properties."""

from decimal import Decimal

from middlesman.config import Settings


def test_default_commission_rate() -> None:
    s = Settings()
    assert s.commission_rate == Decimal("0.05")
    assert isinstance(s.commission_tiers, list)


def test_default_policies() -> None:
    s = Settings()
    assert s.audit_release_refund is True
    assert s.refund_promotes_parent is False
    assert s.preserve_settled_milestones is False


def test_payment_gateway_configured() -> None:
    assert Settings(payment_key_id="", payment_key_secret="").payment_gateway_configured is False
    assert Settings(payment_key_id="rzp_test", payment_key_secret="").payment_gateway_configured is False
    assert Settings(payment_key_id="rzp_test", payment_key_secret="s3cret").payment_gateway_configured is True


def test_is_sqlite() -> None:
    assert Settings(database_url="sqlite+aiosqlite:///:memory:").is_sqlite is True
    assert Settings(database_url="postgresql+asyncpg://u:p@localhost/db").is_sqlite is False


def test_commission_tiers_parse() -> None:
    s = Settings(commission_tiers=[["1000", "0.05"], ["10000", "0.035"]])
    assert s.commission_tiers == [
        (Decimal("1000"), Decimal("0.05")),
        (Decimal("10000"), Decimal("0.035")),
    ]


def test_default_settings_testable() -> None:
    """Default settings need no external database."""
    s = Settings()
    assert s.env != "production"
    assert s.test_database_url.startswith("sqlite")
