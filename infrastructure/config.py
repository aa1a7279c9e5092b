"""Application settings, read from the environment or a .env file"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Hotel Reservation API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security (override in production)
    SECRET_KEY: str = "your-secret-key-keep-it-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Property defaults
    DEFAULT_CURRENCY: str = "PHP"
    DEFAULT_TIMEZONE: str = "Asia/Manila"
    MAX_STAY_NIGHTS: int = 30

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    OUT_OF_ORDER_SWEEP_INTERVAL_SECONDS: int = 300

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()
