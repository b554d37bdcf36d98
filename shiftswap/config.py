from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )

    # Core
    app_name: str = Field(default="Shift Swap API", alias="APP_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Workflow windows
    swap_expiry_hours: int = Field(default=48, alias="SWAP_EXPIRY_HOURS")
    swap_retention_days: int = Field(default=7, alias="SWAP_RETENTION_DAYS")
    notification_retention_days: int = Field(
        default=7, alias="NOTIFICATION_RETENTION_DAYS"
    )
    maintenance_interval_days: int = Field(
        default=30, alias="MAINTENANCE_INTERVAL_DAYS"
    )

    # Store
    transaction_max_attempts: int = Field(
        default=5, alias="TRANSACTION_MAX_ATTEMPTS"
    )


settings = Settings()
