"""Application configuration using pydantic-settings."""
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[3] / ".env"),
        case_sensitive=False,
    )

    # Application
    app_name: str = "Dispatch Dashboard API"
    log_level: str = "INFO"
    log_format: str = "console"
    app_mode: str = "demo"
    cors_origins: str = "*"

    # Store
    dispatch_db_path: str = "./data/dispatch.db"
    activity_retention: int = 5000

    # Tenancy
    auth_enabled: bool = False
    default_tenant_id: str = "demo"
    tenant_tokens: str = ""
    default_role: str = "dispatcher"
    default_actor: str = "anonymous"

    # Metrics
    timezone: str = "UTC"
    aging_hours: int = 48

    def normalized_app_mode(self) -> str:
        mode = (self.app_mode or "").strip().lower()
        return mode if mode in {"demo", "production"} else "production"

    def is_demo_mode(self) -> bool:
        return self.normalized_app_mode() == "demo"

    def resolved_timezone(self) -> ZoneInfo:
        """
        Timezone used for local-midnight day boundaries.

        An unknown zone name falls back to UTC rather than failing every
        metrics request.
        """
        try:
            return ZoneInfo((self.timezone or "UTC").strip())
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")

    def allowed_origins(self) -> list[str]:
        origins = [item.strip() for item in (self.cors_origins or "").split(",") if item.strip()]
        return origins or ["*"]

    def tenant_token_map(self) -> dict[str, str]:
        """`token:tenant` pairs from TENANT_TOKENS; entries without both halves are skipped."""
        pairs = (item.partition(":") for item in (self.tenant_tokens or "").split(","))
        return {token.strip(): tenant.strip() for token, _, tenant in pairs if token.strip() and tenant.strip()}


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
