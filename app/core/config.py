from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    BUSINESS_TIMEZONE: str = "America/Los_Angeles"

    STORE_PROVIDER: str = "memory"
    DATA_DIR: str = "./data"

    HOLD_DURATION_SECONDS: int = 300
    SWEEP_INTERVAL_SECONDS: float = 30.0
    SWEEP_ENABLED: bool = True

    # "payment_required" or "provider_override"
    CONFIRMATION_POLICY: str = "payment_required"
    ENFORCE_START_TIME: bool = False

    PAYMENT_BASE_URL: str = "https://payments.internal/v1"
    PAYMENT_API_KEY: str | None = None
    PAYMENT_TIMEOUT_SECONDS: float = 10.0


settings = Settings()
