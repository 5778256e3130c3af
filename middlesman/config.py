from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    env: str = "development"
    log_level: str = "INFO"
    # In-memory SQLite keeps local development free of external services.
    # Point this at postgresql+asyncpg://... for anything shared.
    database_url: str = "sqlite+aiosqlite:///:memory:"
    test_database_url: str = "sqlite+aiosqlite:///:memory:"
    redis_url: str = "redis://localhost:6379/0"

    # Sessions (server-side, stored in Redis)
    session_cookie_name: str = "middlesman.sid"
    session_ttl_seconds: int = 30 * 24 * 60 * 60  # 30 days
    session_cookie_secure: bool = False

    # Marketplace API: empty list accepts any well-formed bearer token
    marketplace_api_tokens: list[str] = []

    # --- Commission schedule ---
    # Flat rate applied when no tier matches.
    commission_rate: Decimal = Decimal("0.05")
    # Optional tiers as [upper_bound_amount, rate] pairs, ascending by bound.
    # e.g. [["1000", "0.05"], ["10000", "0.035"]] → 5% up to 1k, 3.5% up to 10k,
    # commission_rate above that.
    commission_tiers: list[tuple[Decimal, Decimal]] = []

    # --- Lifecycle policies ---
    # Write a TransactionLog entry on release/refund. False reproduces the
    # legacy behaviour where only creation and disputes were logged.
    audit_release_refund: bool = True
    # When every milestone has been refunded individually, refund the parent.
    refund_promotes_parent: bool = False
    # Whole release/refund leaves milestones that already settled the other
    # way (refunded on release, completed on refund) as they are. Off means
    # every milestone follows the parent.
    preserve_settled_milestones: bool = False

    # Payment gateway (Razorpay-compatible orders API)
    payment_gateway_url: str = "https://api.razorpay.com/v1"
    payment_key_id: str = ""
    payment_key_secret: str = ""
    payment_timeout_seconds: int = 10

    # Rate limiting defaults
    rate_limit_read_capacity: int = 120
    rate_limit_read_refill_per_min: int = 60
    rate_limit_write_capacity: int = 30
    rate_limit_write_refill_per_min: int = 10
    rate_limit_lifecycle_capacity: int = 20
    rate_limit_lifecycle_refill_per_min: int = 5
    rate_limit_auth_capacity: int = 10
    rate_limit_auth_refill_per_min: int = 2
    rate_limit_admin_capacity: int = 240
    rate_limit_admin_refill_per_min: int = 120

    # CORS
    cors_allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    max_body_bytes: int = 1_048_576

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def payment_gateway_configured(self) -> bool:
        return bool(self.payment_key_id and self.payment_key_secret)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
