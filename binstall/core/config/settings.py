"""
Installer settings — environment-sourced runtime configuration.

Resolved in precedence order:
    explicit override (CLI flag)  >  BINSTALL_* env var  >  default

Proxies are not configured here: urllib reads the standard
``http_proxy`` / ``https_proxy`` / ``no_proxy`` variables itself.
"""

from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

ENV_PREFIX = "BINSTALL_PREFIX"
ENV_TIMEOUT = "BINSTALL_TIMEOUT"
ENV_TEST_TIMEOUT = "BINSTALL_TEST_TIMEOUT"
ENV_TMPDIR = "BINSTALL_TMPDIR"


class ConfigError(Exception):
    """Raised when installer settings are invalid."""


def default_prefix() -> Path:
    """Platform-conventional installation prefix."""
    if platform.system() == "Darwin":
        if platform.machine().lower() in ("arm64", "aarch64"):
            return Path("/opt/homebrew")
        return Path("/usr/local")
    return Path.home() / ".local"


class InstallerSettings(BaseModel):
    """Runtime knobs for one installer process."""

    prefix: Path = Field(default_factory=default_prefix)
    timeout: float = Field(default=60.0, gt=0)
    test_timeout: float = Field(default=30.0, gt=0)
    tmpdir: Path | None = None

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"


def load_settings(**overrides: Any) -> InstallerSettings:
    """Build settings from the environment plus explicit overrides.

    ``None`` overrides are ignored so CLI options can be passed
    straight through.

    Raises:
        ConfigError: If a value cannot be parsed.
    """
    values: dict[str, Any] = {}
    env_map = {
        "prefix": ENV_PREFIX,
        "timeout": ENV_TIMEOUT,
        "test_timeout": ENV_TEST_TIMEOUT,
        "tmpdir": ENV_TMPDIR,
    }
    for key, env_var in env_map.items():
        raw = os.environ.get(env_var)
        if raw:
            values[key] = raw

    for key, value in overrides.items():
        if value is not None:
            values[key] = value

    if "prefix" in values:
        values["prefix"] = Path(values["prefix"]).expanduser()

    try:
        return InstallerSettings.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid installer settings: {e}") from e
