from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, HttpUrl, ValidationError


class Settings(BaseModel):
    supabase_url: HttpUrl
    supabase_anon_key: str
    supabase_service_key: str | None = None
    bot_token: str | None = None
    environment: Literal["local", "staging", "production"] = "local"
    # Polling fallback for cache refresh, in seconds
    refresh_interval_seconds: int = 60
    query_stale_seconds: int = 300
    ui_state_path: str = ".coach_crm_state.json"
    subscription_alert_days: int = 7

    @property
    def is_debug(self) -> bool:
        return self.environment == "local"

    @property
    def rest_url(self) -> str:
        return f"{str(self.supabase_url).rstrip('/')}/rest/v1"

    @property
    def auth_url(self) -> str:
        return f"{str(self.supabase_url).rstrip('/')}/auth/v1"


def _build_settings() -> Settings:
    # Load .env file once on first settings build (for local development)
    load_dotenv()

    try:
        return Settings(
            supabase_url=os.environ["SUPABASE_URL"],
            supabase_anon_key=os.environ["SUPABASE_ANON_KEY"],
            supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY"),
            bot_token=os.getenv("BOT_TOKEN"),
            environment=os.getenv("ENVIRONMENT", "local"),
            refresh_interval_seconds=os.getenv("REFRESH_INTERVAL_SECONDS", "60"),
            query_stale_seconds=os.getenv("QUERY_STALE_SECONDS", "300"),
            ui_state_path=os.getenv("UI_STATE_PATH", ".coach_crm_state.json"),
            subscription_alert_days=os.getenv("SUBSCRIPTION_ALERT_DAYS", "7"),
        )
    except KeyError as exc:
        required_keys = ("SUPABASE_URL", "SUPABASE_ANON_KEY")
        missing = [key for key in required_keys if key not in os.environ]
        raise RuntimeError(
            f"Missing required environment variables: {', '.join(missing)}"
        ) from exc
    except ValidationError as exc:
        raise RuntimeError(f"Invalid settings: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Reads environment variables once and validates them with Pydantic.
    """

    return _build_settings()
