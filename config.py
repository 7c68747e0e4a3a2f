import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        environment: str,
        token_secret: str,
        token_expire_days: int,
        cookie_expire_days: int,
        cors_origins: list[str],
        db_connect_timeout_secs: float,
        db_pool_timeout_secs: float,
        timezone: str,
        scheduler_enabled: bool,
        create_schema: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.environment = environment
        self.token_secret = token_secret
        self.token_expire_days = token_expire_days
        self.cookie_expire_days = cookie_expire_days
        self.cors_origins = cors_origins
        self.db_connect_timeout_secs = db_connect_timeout_secs
        self.db_pool_timeout_secs = db_pool_timeout_secs
        self.timezone = timezone
        self.scheduler_enabled = scheduler_enabled
        self.create_schema = create_schema
        self.log_level = log_level

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'finance.db'}"
    environment = os.getenv("FINANCE_ENVIRONMENT", "development").strip().lower()
    token_secret = os.getenv(
        "FINANCE_TOKEN_SECRET",
        "5f1c0e9a2b7d4c3e8a6f0b1d9c2e7a4f3b8d6c1e0a9f2b7c4d3e8a1f6b0c9d2e",
    )
    token_expire_days = int(os.getenv("FINANCE_TOKEN_EXPIRE_DAYS", "7"))
    cookie_expire_days = int(os.getenv("FINANCE_COOKIE_EXPIRE_DAYS", "7"))
    cors_origins = [
        origin.strip()
        for origin in os.getenv(
            "FINANCE_CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
        ).split(",")
        if origin.strip()
    ]
    db_connect_timeout_secs = float(os.getenv("FINANCE_DB_CONNECT_TIMEOUT_SECS", "30"))
    db_pool_timeout_secs = float(os.getenv("FINANCE_DB_POOL_TIMEOUT_SECS", "45"))
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    scheduler_enabled = _env_flag("FINANCE_SCHEDULER_ENABLED", "true")
    create_schema = _env_flag("FINANCE_CREATE_SCHEMA", "true")
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        environment=environment,
        token_secret=token_secret,
        token_expire_days=token_expire_days,
        cookie_expire_days=cookie_expire_days,
        cors_origins=cors_origins,
        db_connect_timeout_secs=db_connect_timeout_secs,
        db_pool_timeout_secs=db_pool_timeout_secs,
        timezone=timezone,
        scheduler_enabled=scheduler_enabled,
        create_schema=create_schema,
        log_level=log_level,
    )
