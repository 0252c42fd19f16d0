"""Application settings.

All values are read from the environment (or a local ``.env`` file) by
pydantic-settings. Field names match the environment variable names.
"""

from typing import Optional

from pydantic import PostgresDsn, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from repspheres.core.config.enums import Environment, UnknownFeaturePolicy


class Settings(BaseSettings):
    """Backend configuration.

    Groups:
        - runtime: environment, logging, CORS
        - database: Postgres connection and pool sizing
        - stripe: keys, price ids, network behaviour
        - auth: identity-provider token verification
        - entitlements: free tier, trial and unknown-feature policies
        - usage: metered reporting and reconciliation cadence
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=True)

    # Runtime
    PROJECT_NAME: str = "RepSpheres Market Intelligence API"
    ENVIRONMENT: Environment = Environment.LOCAL
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    ADDITIONAL_CORS_ORIGINS: Optional[str] = None
    RUN_ALEMBIC_MIGRATIONS: bool = False

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "repspheres"
    POSTGRES_SSLMODE: str = "prefer"
    db_pool_size: int = 10
    db_pool_max_overflow: int = 20

    # Stripe
    STRIPE_ENABLED: bool = False
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_STARTER_PRICE_ID: Optional[str] = None
    STRIPE_PRO_PRICE_ID: Optional[str] = None
    STRIPE_ENTERPRISE_PRICE_ID: Optional[str] = None
    STRIPE_AI_QUERIES_METERED_PRICE_ID: Optional[str] = None
    STRIPE_AUTOMATION_RUNS_METERED_PRICE_ID: Optional[str] = None
    STRIPE_CATEGORIES_METERED_PRICE_ID: Optional[str] = None
    STRIPE_API_CALLS_METERED_PRICE_ID: Optional[str] = None
    STRIPE_METER_EVENT_NAME_PREFIX: str = "repspheres"
    STRIPE_TIMEOUT_SECONDS: float = 10.0
    STRIPE_MAX_NETWORK_RETRIES: int = 2

    CHECKOUT_SUCCESS_URL: str = "http://localhost:5173/subscription?checkout=success"
    CHECKOUT_CANCEL_URL: str = "http://localhost:5173/subscription?checkout=cancel"
    PORTAL_RETURN_URL: str = "http://localhost:5173/subscription"

    # Auth
    AUTH_ENABLED: bool = True
    SUPABASE_JWT_SECRET: Optional[str] = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"
    LOCAL_USER_ID: str = "00000000-0000-0000-0000-000000000001"
    LOCAL_USER_EMAIL: str = "local@repspheres.dev"

    # Entitlements
    FREE_TIER_ENABLED: bool = True
    TRIAL_GRANTS_ACCESS: bool = False
    UNKNOWN_FEATURE_POLICY: UnknownFeaturePolicy = UnknownFeaturePolicy.ALLOW
    AI_QUERY_OVERAGE_PRICE: float = 0.50

    # Usage metering
    METERED_REPORT_TIMEOUT_SECONDS: float = 5.0
    USAGE_RECONCILE_INTERVAL_SECONDS: float = 300.0
    USAGE_RECONCILE_GRACE_SECONDS: int = 120
    USAGE_RECONCILE_BATCH_SIZE: int = 200

    # Notifications (trial ending, payment failed)
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_ASYNC_DATABASE_URI(self) -> str:  # noqa: N802
        """Async SQLAlchemy URL built from the POSTGRES_* fields."""
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD or None,
                host=self.POSTGRES_HOST,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    @property
    def LOCAL_DEVELOPMENT(self) -> bool:  # noqa: N802
        """Whether the backend runs on a developer machine."""
        return self.ENVIRONMENT == Environment.LOCAL

    @model_validator(mode="after")
    def _validate_required_secrets(self) -> "Settings":
        if self.STRIPE_ENABLED and not self.STRIPE_SECRET_KEY:
            raise ValueError("STRIPE_SECRET_KEY is required when STRIPE_ENABLED is true")
        if self.AUTH_ENABLED and not self.SUPABASE_JWT_SECRET:
            raise ValueError("SUPABASE_JWT_SECRET is required when AUTH_ENABLED is true")
        return self

    def plan_price_ids(self) -> dict[str, Optional[str]]:
        """Provider price id per purchasable plan id."""
        return {
            "starter": self.STRIPE_STARTER_PRICE_ID,
            "professional": self.STRIPE_PRO_PRICE_ID,
            "enterprise": self.STRIPE_ENTERPRISE_PRICE_ID,
        }

    def metered_price_ids(self) -> dict[str, Optional[str]]:
        """Provider metered price id per usage feature type."""
        return {
            "ai_queries": self.STRIPE_AI_QUERIES_METERED_PRICE_ID,
            "automation_runs": self.STRIPE_AUTOMATION_RUNS_METERED_PRICE_ID,
            "categories": self.STRIPE_CATEGORIES_METERED_PRICE_ID,
            "api_calls": self.STRIPE_API_CALLS_METERED_PRICE_ID,
        }
