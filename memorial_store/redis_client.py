"""
Redis access for wizard sessions: pooled connection, retries with jittered
exponential backoff, and translation of redis errors into RedisConnectionError.
"""
import random
import time
from typing import Any, Optional

import redis
from redis.exceptions import AuthenticationError, ConnectionError, RedisError, TimeoutError

from memorial_store.config import Config
from memorial_store.exceptions import RedisConnectionError


class RedisClient:
    """Redis client with connection pooling and retry logic"""

    def __init__(self, url: Optional[str] = None):
        self.url = url or self._redis_url()
        self.pool: Optional[redis.ConnectionPool] = None
        self.client: Optional[redis.Redis] = None
        self._connect()

    @staticmethod
    def _redis_url() -> str:
        scheme = "rediss" if Config.REDIS_SSL else "redis"
        auth = f":{Config.REDIS_AUTH_TOKEN}@" if Config.REDIS_AUTH_TOKEN else ""
        return f"{scheme}://{auth}{Config.REDIS_HOST}:{Config.REDIS_PORT}/{Config.REDIS_DB}"

    def _connect(self):
        try:
            self.pool = redis.ConnectionPool.from_url(
                self.url,
                max_connections=Config.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=Config.REDIS_RETRY_ON_TIMEOUT,
                decode_responses=True
            )
            self.client = redis.Redis(connection_pool=self.pool)
            self.client.ping()
        except (ConnectionError, AuthenticationError) as e:
            raise RedisConnectionError(f"Failed to connect to Redis: {e}")

    def _call(self, command: str, *args, **kwargs) -> Any:
        """
        Run one redis command, retrying connection failures and timeouts.

        Args:
            command: Name of the redis.Redis method
            *args, **kwargs: Passed through to the command

        Raises:
            RedisConnectionError: After the last retry, or at once for any
                other redis error
        """
        backoff = Config.REDIS_INITIAL_BACKOFF_SECONDS
        attempts = Config.REDIS_MAX_RETRIES

        for attempt in range(1, attempts + 1):
            try:
                return getattr(self.client, command)(*args, **kwargs)
            except (ConnectionError, TimeoutError) as e:
                if attempt == attempts:
                    raise RedisConnectionError(f"Redis {command} failed after {attempts} attempts: {e}")
                time.sleep(backoff + random.uniform(0, backoff * 0.1))
                backoff = min(backoff * 2, Config.REDIS_MAX_BACKOFF_SECONDS)
                try:
                    self._connect()
                except RedisConnectionError:
                    pass  # next attempt reports the failure
            except RedisError as e:
                raise RedisConnectionError(f"Redis error on {command}: {e}")

    def get(self, key: str) -> Optional[str]:
        return self._call("get", key)

    def set(self, key: str, value: Any, ex: Optional[int] = None, nx: bool = False) -> bool:
        """SET with optional TTL; with nx, only when the key is absent"""
        return bool(self._call("set", key, value, ex=ex, nx=nx))

    def delete(self, *keys: str) -> int:
        return self._call("delete", *keys)

    def eval(self, script: str, num_keys: int, *keys_and_args) -> Any:
        return self._call("eval", script, num_keys, *keys_and_args)

    def ping(self) -> bool:
        """Single ping without retries, for health checks"""
        try:
            return self.client.ping()
        except RedisError:
            return False

    def close(self):
        if self.pool:
            self.pool.disconnect()


_redis_client: Optional[RedisClient] = None


def get_redis_client() -> RedisClient:
    """Get or create the shared Redis client"""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client


def set_redis_client(client) -> None:
    """Override the shared Redis client (useful for tests)"""
    global _redis_client
    _redis_client = client


def close_redis_client() -> None:
    """Disconnect the shared client, if one was created"""
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
