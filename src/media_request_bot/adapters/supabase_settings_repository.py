"""Supabase repository for application settings."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from media_request_bot.services.policy import SettingsRepository


@dataclass
class SupabaseSettingsRepository(SettingsRepository):
    """Supabase implementation for key-value settings."""

    client: Client

    def get_setting(self, key: str) -> str | None:
        """Return the stored value for a key."""
        response = (
            self.client.table("app_settings")
            .select("value")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return response.data[0].get("value")

    def set_setting(self, key: str, value: str) -> None:
        """Create or update a setting."""
        self.client.table("app_settings").upsert(
            {
                "key": key,
                "value": value,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="key",
        ).execute()
