from __future__ import annotations

import uuid
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

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PUBSUB_CHANNEL: str = "chat.fanout"
    RELAY_ENABLED: bool = True

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None
    AUTH_COOKIE_NAME: str = "token"

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:3001"]

    OUTBOX_POLL_INTERVAL: float = 1.0
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_MAX_ATTEMPTS: int = 5

    # Identifies this process on the fan-out channel so it can skip its own events.
    INSTANCE_ID: str = uuid.uuid4().hex

    WS_HEARTBEAT_SECONDS: int = 25
    WS_IDLE_TIMEOUT_SECONDS: int = 60
    WS_SEND_QUEUE_SIZE: int = 256

    TYPING_TIMEOUT_SECONDS: float = 3.0
    PERSIST_TIMEOUT_SECONDS: float = 5.0
    LOOKUP_TIMEOUT_SECONDS: float = 3.0
    PARTICIPANT_CACHE_SIZE: int = 10_000
    MESSAGE_MAX_LENGTH: int = 5000
    MARK_READ_ON_JOIN: bool = True

    SERVICE_REQUEST_STREAM: str = "service_requests.events"
    SERVICE_REQUEST_GROUP: str = "realtime-chat"

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
