"""Planwise-Engine configuration via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from planwise_engine.subscriptions.status import SubscriptionStatus

_IN_MEMORY_URLS = {"sqlite://", "sqlite+aiosqlite://"}


class PlanwiseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PLANWISE_")

    environment: str = "development"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/planwise.db"
    db_echo: bool = False

    # Logging
    log_level: str = "INFO"

    # Entitlements
    default_override_type: str = "permanent"
    # Computed statuses that make a subscription count towards a customer's entitlements
    qualifying_statuses: list[SubscriptionStatus] = [
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.TRIAL,
    ]

    def validate_for_production(self) -> None:
        """Raise if an in-memory database is configured outside development."""
        if self.environment != "development" and self.db_url in _IN_MEMORY_URLS:
            raise RuntimeError(
                f"In-memory database configured in '{self.environment}' environment. "
                "Set PLANWISE_DB_URL to a persistent database."
            )


@lru_cache
def get_settings() -> PlanwiseSettings:
    settings = PlanwiseSettings()
    settings.validate_for_production()
    return settings
