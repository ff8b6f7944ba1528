from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from .public_config import PublicConfig
from .secret_config import SecretConfig

AUTH_SCHEMES = ("Bearer", "DPoP")


class ConfigError(RuntimeError):
    """Configuration that the client cannot (or, in strict mode, must not) run with."""


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Public and secret config behind one attribute namespace.

    A name defined on both sides resolves to the secret value.
    """

    public: PublicConfig
    secret: SecretConfig

    def __getattr__(self, name: str) -> Any:
        for part in (self.secret, self.public):
            if name in type(part).model_fields:
                return getattr(part, name)
        raise AttributeError(name)

    def scope_list(self) -> list[str]:
        return self.public.scope_list()


def _strict_mode() -> bool:
    """STRICT_SECRETS=1 or ENV/APP_ENV=prod[uction] turn unsafe settings into errors."""
    if str(os.environ.get("STRICT_SECRETS", "0") or "0").strip() not in {"", "0"}:
        return True
    env = os.environ.get("ENV") or os.environ.get("APP_ENV") or ""
    return env.strip().lower() in {"prod", "production"}


def _unsafe_settings(s: Settings) -> list[str]:
    found = []
    if not s.public.validate_ssl:
        found.append("SAI_VALIDATE_SSL")
    if s.secret.client_secret is not None and not s.secret.client_id:
        # a secret nobody can authenticate with
        found.append("SAI_CLIENT_ID")
    return sorted(found)


def _validate(s: Settings) -> None:
    scheme = str(s.public.auth_scheme or "").strip()
    if scheme not in AUTH_SCHEMES:
        raise ConfigError(
            f"Unsupported SAI_AUTH_SCHEME={scheme!r}; expected one of {', '.join(AUTH_SCHEMES)}"
        )
    if s.public.http_timeout_s <= 0:
        raise ConfigError("SAI_HTTP_TIMEOUT_S must be positive")

    unsafe = _unsafe_settings(s)
    if not unsafe:
        return
    if _strict_mode():
        raise ConfigError(
            f"Unsafe client configuration in strict mode: {', '.join(unsafe)}. "
            "Fix them in the environment or `.env.secrets`."
        )
    logging.getLogger("sai_client").warning("unsafe_config_detected", extra={"settings": unsafe})


def _secret_marker(value: Any) -> str:
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    return "SET" if str(value or "").strip() else "UNSET"


def get_safe_config_report() -> dict[str, Any]:
    """
    Effective configuration for `sai-client config`.

    Secret values never appear; each secret field is reported as SET or UNSET.
    """
    s = get_settings()
    public = {
        k: str(v) if isinstance(v, Path) else v for k, v in s.public.model_dump().items()
    }
    secrets = {k: _secret_marker(getattr(s.secret, k)) for k in sorted(SecretConfig.model_fields)}
    return {"strict": _strict_mode(), "public": public, "secrets": secrets}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and validate once; tests call `get_settings.cache_clear()` after changing env."""
    s = Settings(public=PublicConfig(), secret=SecretConfig())
    _validate(s)
    return s
