"""Shared configuration helpers and settings dataclasses."""

from .errors import ConfigurationError
from .runtime import (
    env_bool,
    env_float,
    env_int,
    env_seconds,
    env_str,
    reset_default_values,
)
from .settings import (
    RedisSettings,
    RunnerSettings,
    load_redis_settings,
    load_runner_settings,
)

__all__ = [
    "ConfigurationError",
    "RedisSettings",
    "RunnerSettings",
    "env_bool",
    "env_float",
    "env_int",
    "env_seconds",
    "env_str",
    "load_redis_settings",
    "load_runner_settings",
    "reset_default_values",
]
