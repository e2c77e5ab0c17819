# Configuration module for the Redis session store
from .settings import (
    DEFAULT_NAMESPACE,
    ConfigurationError,
    Environment,
    Settings,
    clear_settings_cache,
    get_settings,
    validate_startup,
)

__all__ = [
    "DEFAULT_NAMESPACE",
    "ConfigurationError",
    "Environment",
    "Settings",
    "clear_settings_cache",
    "get_settings",
    "validate_startup",
]
