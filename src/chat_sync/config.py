from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_BASE_URL: str = "http://localhost:3000"

    CHAT_STREAM_PATH: str = "/api/chat/user-stream"
    WALLET_STREAM_PATH: str = "/api/agent/wallet/stream"
    CHAT_UPLOAD_PATH: str = "/api/chat/upload"
    CHAT_MESSAGES_PATH: str = "/api/chat/messages"
    CHAT_CONVERSATIONS_PATH: str = "/api/chat/conversations"
    CHAT_READ_PATH: str = "/api/chat/read"

    HTTP_TIMEOUT_SECONDS: float = 30.0

    STREAM_RECONNECT_DELAY_SECONDS: float = 7.0
    STREAM_POLL_INTERVAL_SECONDS: float = 5.0

    TOAST_DURATION_SECONDS: float = 5.0
    NOTIFY_ON_RECONNECT: bool = True
    CURRENCY: str = "OMR"

    MAX_MESSAGE_LENGTH: int = 2000
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    SEEN_MESSAGE_IDS: int = 500

    AUDIO_SAMPLE_RATE: int = 16000

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PUBSUB_CHANNEL: str = "chat.fanout"

    SSE_HEARTBEAT_SECONDS: float = 30.0

    CORS_ORIGINS: list[str] = ["*"]

    @property
    def chat_stream_url(self) -> str:
        return f"{self.API_BASE_URL.rstrip('/')}{self.CHAT_STREAM_PATH}"

    @property
    def wallet_stream_url(self) -> str:
        return f"{self.API_BASE_URL.rstrip('/')}{self.WALLET_STREAM_PATH}"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
