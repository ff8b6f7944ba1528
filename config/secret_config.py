from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecretConfig(BaseSettings):
    """
    Client registration and pre-issued tokens.

    Values come from the environment or a local `.env.secrets` file that is
    never committed. Everything sensitive is a `SecretStr` so it stays out of
    reprs and the config report.
    """

    model_config = SettingsConfigDict(
        env_file=".env.secrets",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    client_id: str | None = Field(default=None, alias="SAI_CLIENT_ID")
    client_secret: SecretStr | None = Field(default=None, alias="SAI_CLIENT_SECRET")

    # For `sai-client get`; applications obtain tokens by logging in.
    access_token: SecretStr | None = Field(default=None, alias="SAI_ACCESS_TOKEN")
    refresh_token: SecretStr | None = Field(default=None, alias="SAI_REFRESH_TOKEN")
