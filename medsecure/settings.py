from __future__ import annotations

from typing import List, Optional

from pydantic import AnyUrl, Field, Json
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MEDSECURE_", env_file=".env", extra="ignore")

    # API
    PORT: int = 8040
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: Json[List[str]] = Field(default="[]")

    # Remote policy engine
    POLICY_API_URL: AnyUrl = Field(default="https://api.permit.io/v2")
    POLICY_API_KEY: Optional[str] = Field(default=None)
    POLICY_PROJECT: str = "medsecure"
    POLICY_ENVIRONMENT: str = "dev"
    POLICY_TIMEOUT_SECONDS: float = 5.0
    DEFAULT_TENANT: str = "default"

    # Relay: when enabled the client talks to PROXY_URL and the token stays server-side
    USE_PROXY: bool = False
    PROXY_URL: str = "http://localhost:8040/api/policy"

    # Audit
    DECISION_LOG_CAPACITY: int = 1000

    # Sessions
    SESSION_COOKIE_NAME: str = "medsecure_session"
    SESSION_SIGNING_SECRET: str = Field(default="dev-only-change-me")
    SESSION_TTL_SECONDS: int = 3600
    SESSION_STORAGE_PATH: Optional[str] = None
    COOKIE_SECURE: bool = False
    COOKIE_SAMESITE: str = "lax"

    @property
    def policy_base_url(self) -> str:
        if self.USE_PROXY:
            return self.PROXY_URL.rstrip("/")
        return str(self.POLICY_API_URL).rstrip("/")

    @property
    def remote_enabled(self) -> bool:
        # Through the relay the token lives on the relay side.
        return self.USE_PROXY or bool(self.POLICY_API_KEY)


settings = Settings()
