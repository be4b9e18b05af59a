"""Application configuration."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Runtime settings, read from the environment or a .env file."""

    # Remote completion endpoint
    completion_url: str = "https://oi-server.onrender.com/chat/completions"
    completion_api_key: str = "xxx"
    completion_customer_id: Optional[str] = "cus_S16jfiBUH2cc7P"
    completion_timeout: float = 60.0

    # Gateway the chat session talks to
    gateway_url: str = "http://localhost:8000"

    # Local key-value store; unset keeps everything in memory
    storage_path: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_AI_CHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def completion_headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.completion_api_key}",
        }
        if self.completion_customer_id:
            headers["CustomerId"] = self.completion_customer_id
        return headers


settings = AppSettings()


def get_settings() -> AppSettings:
    """Returns the process-wide settings instance"""
    return settings
