"""Configuration — manifest loading and installer settings."""

from binstall.core.config.loader import load_manifest, parse_manifest  # noqa: F401
from binstall.core.config.settings import (  # noqa: F401
    ConfigError,
    InstallerSettings,
    load_settings,
)
