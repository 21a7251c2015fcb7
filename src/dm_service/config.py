from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
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
    DB_APPLICATION_NAME: str = "dm-service"

    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    WS_HEARTBEAT_SECONDS: int = 30

    # Cross-instance push relay
    REDIS_PUBSUB_CHANNEL: str = "dm.push"

    PRESENCE_KEY: str = "online_user_connections"

    DELIVERY_STREAM: str = "message_sending_queue"
    DELIVERY_GROUP: str = "delivery-consumers"

    CONSUMER_BATCH_SIZE: int = 10
    CONSUMER_BLOCK_MS: int = 5000
    CONSUMER_MAX_ATTEMPTS: int = 3
    CONSUMER_RETRY_DELAY_SECONDS: float = 5.0
    CONSUMER_RECLAIM_IDLE_MS: int = 60_000
    CONSUMER_RECLAIM_INTERVAL_SECONDS: float = 30.0

    SCHEDULER_TIMEZONE: str = "Europe/Istanbul"
    PLANNER_HOUR: int = 2
    ADMISSION_INTERVAL_SECONDS: float = 60.0
    AUTO_MESSAGE_MAX_RETRIES: int = 3

    MESSAGE_MAX_LENGTH: int = 1000

    BACKGROUND_WORKERS_ENABLED: bool = True

    LOG_LEVEL: str = "INFO"

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
