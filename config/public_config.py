from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PublicConfig(BaseSettings):
    """
    Everything about how the client talks to pods and issuers that is safe to
    print: logging, the authorization scheme, OIDC client metadata, HTTP.

    Environment variables win over a local `.env` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # logging
    log_level: str = Field(default="INFO", alias="SAI_LOG_LEVEL")
    # File logging is opt-in; stdout is always on.
    log_dir: Path | None = Field(default=None, alias="SAI_LOG_DIR")
    log_max_bytes: int = Field(default=5 * 1024 * 1024, alias="SAI_LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="SAI_LOG_BACKUP_COUNT")

    # authorization
    auth_scheme: str = Field(default="DPoP", alias="SAI_AUTH_SCHEME")  # Bearer|DPoP
    oidc_issuer: str | None = Field(default=None, alias="SAI_OIDC_ISSUER")
    oidc_scopes: str = Field(default="openid webid offline_access", alias="SAI_OIDC_SCOPES")
    application_id: str | None = Field(default=None, alias="SAI_APPLICATION_ID")
    redirect_uri: str | None = Field(default=None, alias="SAI_REDIRECT_URI")

    # http
    http_timeout_s: float = Field(default=30.0, alias="SAI_HTTP_TIMEOUT_S")
    # DEVELOPMENT USE ONLY when false
    validate_ssl: bool = Field(default=True, alias="SAI_VALIDATE_SSL")
    user_agent: str = Field(default="sai-client/0.1", alias="SAI_USER_AGENT")

    def scope_list(self) -> list[str]:
        return [s for s in str(self.oidc_scopes or "").replace(",", " ").split() if s]
