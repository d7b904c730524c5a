from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str
    # Seconds a SQLite writer waits for the database lock before failing
    SQLITE_BUSY_TIMEOUT: float = 30.0
    SECRET_KEY: str = "dev-insecure-key-change-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # CORS origins for the POS front-end
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Checkout retry budget (invoice-number collisions, concurrent stock changes)
    SALE_MAX_ATTEMPTS: int = 3
    STOCK_RESERVE_MAX_ATTEMPTS: int = 3
    BATCH_SELECTION_POLICY: str = "fefo"  # "fefo", "fifo" or "lifo"

    LOW_STOCK_THRESHOLD: int = 10

    # Create missing tables on startup (development only)
    AUTO_CREATE_TABLES: bool = False


settings = Settings()  # type: ignore[call-arg]
