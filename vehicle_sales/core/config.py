import os
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    PROJECT_NAME: str = "Vehicle Sales Service"
    DEBUG: bool = False

    # Database
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "vehicle_sales"

    @property
    def database_url(self) -> str:
        """Async database URL."""
        # DATABASE_URL from env wins over the individual components
        env_db_url = os.getenv("DATABASE_URL")
        if env_db_url:
            return env_db_url
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Vehicle catalogue service
    VEHICLE_SERVICE_URL: str = "http://localhost:3000"
    VEHICLE_SERVICE_TIMEOUT_SECONDS: float = 10.0
    VEHICLE_SERVICE_MAX_TRIES: int = 3
    VEHICLE_SERVICE_RETRY_BUDGET_SECONDS: float = 15.0

    # Outbound webhook
    WEBHOOK_URL: str | None = Field(default=None)
    WEBHOOK_TIMEOUT_SECONDS: float = 5.0
    WEBHOOK_MAX_ATTEMPTS: int = 5
    WEBHOOK_BATCH_SIZE: int = 50
    WEBHOOK_DELIVERY_DELAY_SECONDS: float = 1.0

    @property
    def webhook_url(self) -> str:
        if self.WEBHOOK_URL:
            return self.WEBHOOK_URL
        return f"{self.VEHICLE_SERVICE_URL.rstrip('/')}/api/webhook/pagamento"

    # Reconciliation
    PENDING_BATCH_SIZE: int = 20
    AUTO_APPROVAL_POLICY: str = "manual"  # manual | unconditional
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_INTERVAL_SECONDS: int = 10
    SCHEDULER_TIMEZONE: str = "UTC"

    RUN_MIGRATIONS_ON_STARTUP: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


settings = Settings()
