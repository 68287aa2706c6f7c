"""
Redis connector.

Owns the single long-lived Redis client for the process. Commands issued
through the client are retried without an attempt cap, which queue workers
built on top of this connection rely on. Connection attempts run in the
background until one succeeds, and every outcome is only logged: while the
server is unreachable the connector sits in the "error" state and the
service keeps running.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional

from fastapi import Request
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import AbstractBackoff, ExponentialBackoff, NoBackoff
from redis.exceptions import (
    AuthenticationError,
    ConnectionError,
    RedisError,
    TimeoutError,
)

from src.api.config import RedisSettings
from src.api import metrics

logger = logging.getLogger(__name__)

# Redis reply prefix sent when a command needs AUTH first
NOAUTH_MARKER = "NOAUTH"

# A negative retry count means "retry forever"
UNLIMITED_RETRIES = -1

# Delay between connection attempts: 0.1s, 0.2s, 0.4s ... capped at 2s
RECONNECT_BACKOFF_BASE = 0.05
RECONNECT_BACKOFF_CAP = 2.0


class ConnectionStatus(str, Enum):
    WAIT = "wait"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    CLOSED = "closed"


class ErrorKind(str, Enum):
    AUTH_MISSING = "auth_missing"
    GENERIC = "generic"


def classify_error(error: BaseException, password: Optional[str] = None) -> ErrorKind:
    """
    Classify a connection error.

    redis-py maps NOAUTH replies to AuthenticationError, so the type check
    covers the common case. The message check catches the same condition
    when it arrives wrapped in another error type.

    Args:
        error: The exception raised by the connection attempt
        password: The configured password, if any

    Returns:
        ErrorKind.AUTH_MISSING if the server wants a password we did not send
    """
    message = str(error)
    if isinstance(error, AuthenticationError) and (password is None or NOAUTH_MARKER in message):
        return ErrorKind.AUTH_MISSING
    if NOAUTH_MARKER in message:
        return ErrorKind.AUTH_MISSING
    return ErrorKind.GENERIC


class RedisConnector:
    """Long-lived Redis connection with an observable status."""

    def __init__(self, settings: RedisSettings, backoff: Optional[AbstractBackoff] = None):
        self.settings = settings
        self.status = ConnectionStatus.WAIT
        self.last_error: Optional[RedisError] = None
        self.backoff = backoff or ExponentialBackoff(
            cap=RECONNECT_BACKOFF_CAP, base=RECONNECT_BACKOFF_BASE
        )
        self._task: Optional[asyncio.Task] = None
        self.client = Redis(
            **settings.connection_kwargs(),
            retry=Retry(ExponentialBackoff(), UNLIMITED_RETRIES),
            retry_on_error=[ConnectionError, TimeoutError],
        )

    def start(self) -> asyncio.Task:
        """Schedule connection attempts on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self.status = ConnectionStatus.CONNECTING
        self._task = asyncio.get_running_loop().create_task(self._connect_until_ready())
        self._task.add_done_callback(self._on_task_done)
        return self._task

    async def _connect_until_ready(self) -> None:
        failures = 0
        while await self.connect() is not ConnectionStatus.CONNECTED:
            failures += 1
            delay = self.backoff.compute(failures)
            logger.debug("Retrying Redis connection in %.2fs (attempt %d)", delay, failures + 1)
            await asyncio.sleep(delay)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.status = ConnectionStatus.ERROR
            metrics.redis_connection_up.set(0)
            logger.error("Redis connection task failed", exc_info=error)

    async def connect(self) -> ConnectionStatus:
        """
        Make one connection attempt and record the outcome.

        The attempt uses a short-lived probe client with retries disabled;
        through the main client an unreachable server would be retried
        forever and never report an error. The main client opens its pooled
        connections on first use.

        Returns:
            The resulting status (CONNECTED or ERROR)
        """
        self.status = ConnectionStatus.CONNECTING
        probe = Redis(**self.settings.connection_kwargs(), retry=Retry(NoBackoff(), 0))
        try:
            await probe.ping()
        except RedisError as e:
            self._on_error(e)
        else:
            self._on_connect()
        finally:
            await probe.aclose()
        return self.status

    def _on_connect(self) -> None:
        self.status = ConnectionStatus.CONNECTED
        self.last_error = None
        metrics.redis_connection_up.set(1)
        metrics.redis_connection_attempts_total.labels(status="success").inc()
        logger.info("Connected to Redis at %s", self.settings.address)

    def _on_error(self, error: RedisError) -> None:
        self.status = ConnectionStatus.ERROR
        self.last_error = error
        kind = classify_error(error, self.settings.password)
        metrics.redis_connection_up.set(0)
        metrics.redis_connection_attempts_total.labels(status="error").inc()
        metrics.redis_connection_errors_total.labels(kind=kind.value).inc()

        if kind is ErrorKind.AUTH_MISSING:
            logger.error(
                "Redis auth error: the server at %s requires a password. "
                "Set REDIS_PASSWORD in the environment or the .env file.",
                self.settings.address,
            )
        else:
            logger.error("Redis connection error: %s", error)

    async def close(self) -> None:
        """Stop connection attempts and close the client."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        await self.client.aclose()
        self.status = ConnectionStatus.CLOSED
        metrics.redis_connection_up.set(0)


def get_redis_connector(request: Request) -> RedisConnector:
    """FastAPI dependency returning the connector created at startup."""
    return request.app.state.redis
