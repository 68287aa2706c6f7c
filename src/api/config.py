"""
Service configuration loaded from environment variables.

Values are read once at startup. A .env file in the working directory is
loaded first, but never overrides variables already set in the environment.
"""
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_REDIS_HOST = "localhost"
DEFAULT_REDIS_PORT = 6379
DEFAULT_HTTP_HOST = "0.0.0.0"
DEFAULT_HTTP_PORT = 3000
DEFAULT_JSON_BODY_LIMIT = 100 * 1024  # 100kb
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


@dataclass(frozen=True)
class RedisSettings:
    """Connection settings for the Redis server."""
    host: str = DEFAULT_REDIS_HOST
    port: int = DEFAULT_REDIS_PORT
    password: Optional[str] = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def connection_kwargs(self) -> dict:
        """Keyword arguments for constructing a redis client."""
        return {
            "host": self.host,
            "port": self.port,
            "password": self.password,
        }


@dataclass(frozen=True)
class Settings:
    """Top-level service settings."""
    host: str = DEFAULT_HTTP_HOST
    port: int = DEFAULT_HTTP_PORT
    redis: RedisSettings = field(default_factory=RedisSettings)
    json_body_limit: int = DEFAULT_JSON_BODY_LIMIT
    log_level: str = DEFAULT_LOG_LEVEL
    metrics_port: Optional[int] = None

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.port}"


def _get_str(environ: Mapping[str, str], name: str, default: Optional[str]) -> Optional[str]:
    # Empty strings count as unset
    value = environ.get(name)
    return value if value else default


def _get_int(environ: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _get_port(environ: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    port = _get_int(environ, name, default)
    if port is not None and not 0 <= port <= 65535:
        raise ConfigError(f"{name} must be between 0 and 65535, got {port}")
    return port


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Settings with literal defaults for every absent variable

    Raises:
        ConfigError: If a numeric variable is malformed or out of range
    """
    if environ is None:
        environ = os.environ

    redis_settings = RedisSettings(
        host=_get_str(environ, "REDIS_HOST", DEFAULT_REDIS_HOST),
        port=_get_port(environ, "REDIS_PORT", DEFAULT_REDIS_PORT),
        password=_get_str(environ, "REDIS_PASSWORD", None),
    )

    json_body_limit = _get_int(environ, "JSON_BODY_LIMIT", DEFAULT_JSON_BODY_LIMIT)
    if json_body_limit < 0:
        raise ConfigError(f"JSON_BODY_LIMIT must not be negative, got {json_body_limit}")

    log_level = _get_str(environ, "LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    return Settings(
        host=_get_str(environ, "HOST", DEFAULT_HTTP_HOST),
        port=_get_port(environ, "PORT", DEFAULT_HTTP_PORT),
        redis=redis_settings,
        json_body_limit=json_body_limit,
        log_level=log_level,
        metrics_port=_get_port(environ, "METRICS_PORT", None),
    )
