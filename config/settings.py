from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    app_env: str = os.getenv("APP_ENV", "development")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))

    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    gemini_api_base: str = os.getenv(
        "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
    )

    line_token: Optional[str] = os.getenv("LINE_CHANNEL_ACCESS_TOKEN")
    line_push_url: str = os.getenv(
        "LINE_PUSH_URL", "https://api.line.me/v2/bot/message/push"
    )

    users_file: str = os.getenv("LINE_USERS_FILE", "./line_users.json")
    public_dir: str = os.getenv("PUBLIC_DIR", "./public")
    reminder_timezone: str = os.getenv("REMINDER_TIMEZONE", "UTC")
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "30"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
