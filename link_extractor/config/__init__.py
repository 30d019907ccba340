"""Configuration package exports."""

from .loader import HOME_ENV_VAR, PROXY_ENV_VAR, ConfigLocator, ConfigRepository
from .models import DEFAULT_USER_AGENTS, ChunkPolicy, GlobalConfig

__all__ = [
    "ChunkPolicy",
    "ConfigLocator",
    "ConfigRepository",
    "DEFAULT_USER_AGENTS",
    "GlobalConfig",
    "HOME_ENV_VAR",
    "PROXY_ENV_VAR",
]
