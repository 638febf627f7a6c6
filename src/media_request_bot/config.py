"""Application configuration."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from media_request_bot.domain.approvals import ApprovalPolicy

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    telegram_allowed_user_ids: str | None = None
    supabase_url: str
    supabase_service_key: str
    admin_token: str
    overseerr_base_url: str
    overseerr_api_key: str
    overseerr_profile_id: int | None = None
    overseerr_root_folder: str | None = None
    approval_policy: ApprovalPolicy = ApprovalPolicy.AUTO_APPROVE
    session_ttl_minutes: int = Field(default=5, ge=1)
    sweep_interval_seconds: int = Field(default=60, ge=1)
    max_results: int = Field(default=5, ge=1, le=99)
    search_cache_ttl_seconds: int = 300
    identity_salt: str = ""
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_allowed_user_ids(raw: str | None) -> set[int] | None:
    """Parse allowed Telegram user IDs from env."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return None
    ids: set[int] = set()
    for chunk in cleaned.split(","):
        value = chunk.strip()
        if not value:
            continue
        if value.isdigit():
            ids.add(int(value))
    return ids or None
