from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    WS_HEARTBEAT_SECONDS: int = 30

    FANOUT_BACKEND: Literal["local", "redis"] = "local"
    REDIS_PUBSUB_CHANNEL: str = "support.fanout"

    AUTO_REPLY_MIN_DELAY: float = 0.8
    AUTO_REPLY_MAX_DELAY: float = 1.5
    AUTOMATED_SENDER_NAME: str = "Assistant"

    STORE_NAME: str = "MINH ANH - Mâm Quả & Hoa Cưới"
    STORE_HOTLINE: str = "0839 477 199"
    STORE_ZALO: str = "0944 600 344"

    STATS_TIMEZONE: str = "UTC"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    @model_validator(mode="after")
    def _check_delay_range(self) -> Settings:
        if not 0 <= self.AUTO_REPLY_MIN_DELAY <= self.AUTO_REPLY_MAX_DELAY:
            raise ValueError("AUTO_REPLY_MIN_DELAY must be >= 0 and <= AUTO_REPLY_MAX_DELAY")
        return self

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
