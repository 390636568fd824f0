"""Settings dataclasses for the Redis connection and the runner services."""

from dataclasses import dataclass

from .errors import ConfigurationError
from .runtime import env_bool, env_float, env_int, env_seconds, env_str

DEFAULT_REDIS_HOST = "localhost"
DEFAULT_REDIS_PORT = 6379
DEFAULT_SOCKET_TIMEOUT_SECONDS = 10.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0

DEFAULT_REGISTRY_TTL_SECONDS = 60 * 60 * 24
DEFAULT_KEY_PREFIX = "binrunner:run:"
DEFAULT_GRACEFUL_KILL_SECONDS = 3.0
DEFAULT_FORCE_KILL_SECONDS = 2.0
DEFAULT_STORE_RETRY_ATTEMPTS = 3
DEFAULT_STORE_TIMEOUT_SECONDS = 2.0


@dataclass(frozen=True)
class RedisSettings:
    host: str
    port: int
    db: int
    password: str | None
    ssl: bool
    socket_timeout: float
    socket_connect_timeout: float


@dataclass(frozen=True)
class RunnerSettings:
    """Tunables shared by the executor, the cancellation service and the store."""

    registry_ttl_seconds: int = DEFAULT_REGISTRY_TTL_SECONDS
    key_prefix: str = DEFAULT_KEY_PREFIX
    graceful_kill_seconds: float = DEFAULT_GRACEFUL_KILL_SECONDS
    force_kill_seconds: float = DEFAULT_FORCE_KILL_SECONDS
    store_retry_attempts: int = DEFAULT_STORE_RETRY_ATTEMPTS
    store_timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS


def load_redis_settings() -> RedisSettings:
    """Build Redis settings from ``REDIS_*`` environment variables."""

    host = env_str("REDIS_HOST", or_value=DEFAULT_REDIS_HOST)
    port = env_int("REDIS_PORT", or_value=DEFAULT_REDIS_PORT)
    db = env_int("REDIS_DB", or_value=0)
    if port is None or not 0 < port < 65536:
        raise ConfigurationError.invalid_value("REDIS_PORT", port, "Expected a TCP port number")
    if db is None or db < 0:
        raise ConfigurationError.invalid_value("REDIS_DB", db, "Database index must be non-negative")

    socket_timeout = env_float("REDIS_SOCKET_TIMEOUT", or_value=DEFAULT_SOCKET_TIMEOUT_SECONDS)
    connect_timeout = env_float("REDIS_SOCKET_CONNECT_TIMEOUT", or_value=DEFAULT_CONNECT_TIMEOUT_SECONDS)
    for name, value in (("REDIS_SOCKET_TIMEOUT", socket_timeout), ("REDIS_SOCKET_CONNECT_TIMEOUT", connect_timeout)):
        if value is None or value <= 0:
            raise ConfigurationError.invalid_value(name, value, "Socket timeouts must be positive")

    password = env_str("REDIS_PASSWORD", allow_blank=True)
    return RedisSettings(
        host=host or DEFAULT_REDIS_HOST,
        port=port,
        db=db,
        password=password or None,
        ssl=bool(env_bool("REDIS_SSL", or_value=False)),
        socket_timeout=socket_timeout,
        socket_connect_timeout=connect_timeout,
    )


def load_runner_settings() -> RunnerSettings:
    """Build runner settings from ``BINRUNNER_*`` environment variables."""

    ttl = env_seconds("BINRUNNER_REGISTRY_TTL_SECONDS", or_value=DEFAULT_REGISTRY_TTL_SECONDS)
    if not ttl:
        raise ConfigurationError.invalid_value("BINRUNNER_REGISTRY_TTL_SECONDS", ttl, "TTL must be positive")

    key_prefix = env_str("BINRUNNER_KEY_PREFIX", or_value=DEFAULT_KEY_PREFIX, strip=False)

    graceful = env_float("BINRUNNER_GRACEFUL_KILL_SECONDS", or_value=DEFAULT_GRACEFUL_KILL_SECONDS)
    force = env_float("BINRUNNER_FORCE_KILL_SECONDS", or_value=DEFAULT_FORCE_KILL_SECONDS)
    for name, value in (("BINRUNNER_GRACEFUL_KILL_SECONDS", graceful), ("BINRUNNER_FORCE_KILL_SECONDS", force)):
        if value is None or value < 0:
            raise ConfigurationError.invalid_value(name, value, "Timeout must be non-negative")

    attempts = env_int("BINRUNNER_STORE_RETRY_ATTEMPTS", or_value=DEFAULT_STORE_RETRY_ATTEMPTS)
    if attempts is None or attempts < 1:
        raise ConfigurationError.invalid_value("BINRUNNER_STORE_RETRY_ATTEMPTS", attempts, "At least one attempt is required")

    store_timeout = env_float("BINRUNNER_STORE_TIMEOUT_SECONDS", or_value=DEFAULT_STORE_TIMEOUT_SECONDS)
    if store_timeout is None or store_timeout <= 0:
        raise ConfigurationError.invalid_value("BINRUNNER_STORE_TIMEOUT_SECONDS", store_timeout, "Store timeout must be positive")

    return RunnerSettings(
        registry_ttl_seconds=ttl,
        key_prefix=key_prefix or DEFAULT_KEY_PREFIX,
        graceful_kill_seconds=float(graceful),
        force_kill_seconds=float(force),
        store_retry_attempts=attempts,
        store_timeout_seconds=float(store_timeout),
    )


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT_SECONDS",
    "DEFAULT_KEY_PREFIX",
    "DEFAULT_REGISTRY_TTL_SECONDS",
    "DEFAULT_SOCKET_TIMEOUT_SECONDS",
    "DEFAULT_STORE_TIMEOUT_SECONDS",
    "RedisSettings",
    "RunnerSettings",
    "load_redis_settings",
    "load_runner_settings",
]
