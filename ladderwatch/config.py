"""Ladderwatch — Central Configuration via Pydantic Settings."""

import os
from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Blizzard API ──
    blizzard_client_id: str = ""
    blizzard_client_secret: str = ""
    blizzard_locale: str = "en_US"
    blizzard_oauth_url: str = "https://oauth.battle.net/token"
    blizzard_api_host: str = "https://{region}.api.blizzard.com"

    # ── Database ──
    database_url: str = ""

    # ── Static config (roster + score profile) ──
    config_dir: str = "config"
    tracked_characters_file: str = "tracked-characters.json"
    score_profile_file: str = "score-profile.json"

    # ── Telegram digest ──
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    telegram_digest_enabled: bool = False
    telegram_api_base: str = "https://api.telegram.org"
    league_name: str = "Ladderwatch League"
    # Room for at least one character before the "..." marker
    digest_max_length: int = Field(default=3900, ge=4)

    # ── Job trigger ──
    cron_secret: Optional[str] = None

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    poll_hour: int = 6  # Daily poll + digest at 06:00 UTC
    poll_minute: int = 0

    # ── Normalizer ──
    normalized_schema_version: int = 1

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/ladderwatch.db"
        return "sqlite:///./ladderwatch.db"

    @property
    def telegram_send_configured(self) -> bool:
        """True when the digest may be sent (enabled + token + chat)."""
        return bool(
            self.telegram_digest_enabled
            and self.telegram_bot_token
            and self.telegram_chat_id
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
