"""
Settings access for library code.

The settings layer itself lives in the top-level `config` package so the CLI,
tests and library share one cached `Settings` instance.
"""

from __future__ import annotations

from config.settings import ConfigError as ConfigError
from config.settings import Settings as Settings
from config.settings import get_safe_config_report as get_safe_config_report
from config.settings import get_settings as get_settings
