from __future__ import annotations

from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError
from .server import create_app

__all__ = [
    "AppConfig",
    "ConfigError",
    "config_sha256",
    "create_app",
    "load_config",
    "resolve_runtime_secrets",
]
