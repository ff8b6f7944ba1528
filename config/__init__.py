"""
Settings for sai-client: `public_config` (safe defaults, `.env`) and
`secret_config` (credentials, `.env.secrets`), merged by `settings.get_settings()`.
"""

from .settings import ConfigError, Settings, get_settings  # noqa: F401
