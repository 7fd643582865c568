from pydantic import AliasChoices, AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    MAX_EVENT_SIZE: int = 65536
    LOG_JSON: bool = True

    # Dedup backend selection: "memory" or "redis"
    DEDUP_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_URL: AnyUrl | None = None

    # Leads table (Supabase PostgREST); in-memory store when unset
    SUPABASE_URL: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SUPABASE_URL", "SUPABASELEADS_SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"
        ),
    )
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SUPABASE_SERVICE_ROLE_KEY", "SUPABASELEADS_SUPABASE_SERVICE_ROLE_KEY"
        ),
    )

    # Meta Conversions API
    FACEBOOK_PIXEL_ID: str | None = None
    META_API_ACCESS_TOKEN: str | None = None
    META_TEST_EVENT_CODE: str | None = None
    META_API_VERSION: str = "v17.0"

    # GA4 Measurement Protocol
    NEXT_PUBLIC_GA4_MEASUREMENT_ID: str | None = None
    GA4_API_SECRET: str | None = None
    GA4_DEBUG: bool = False

    # CRM webhook delivery
    WEBHOOK_ENABLED: bool = True
    WEBHOOK_MAX_ATTEMPTS: int = 3
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    DEFAULT_COUNTRY_CODE: str = "55"

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
