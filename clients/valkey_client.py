"""
Valkey (Redis-compatible) storage for durable sessions and onboarding drafts.

Thin wrapper over redis-py with string values (decode_responses=True).
Fail-fast: construction pings the server and every call raises
redis.RedisError on connection trouble instead of returning a fallback.
Multi-key writes go through a MULTI/EXEC pipeline so a reader never sees
half of a credential pair.
"""

import json
import logging
from typing import Iterable, Mapping

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Key-value access used by SessionStore and DraftStore.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set_many({"auth:dev1:accessToken": "a", "auth:dev1:refreshToken": "r"})
        client.get_many(["auth:dev1:accessToken", "auth:dev1:refreshToken"])
    """

    def __init__(self, url: str):
        """
        Connect and verify the server answers.

        Raises:
            redis.ConnectionError: If Valkey is unreachable.
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def get(self, key: str) -> str | None:
        """Value at key, or None when absent."""
        return self._client.get(key)

    def get_many(self, keys: Iterable[str]) -> dict[str, str | None]:
        """Read several keys in one round trip. Missing keys map to None."""
        keys = list(keys)
        if not keys:
            return {}
        return dict(zip(keys, self._client.mget(keys)))

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        """Store value, expiring after expire_seconds when given."""
        self._client.set(key, value, ex=expire_seconds)

    def set_many(self, values: Mapping[str, str]) -> None:
        """Write several keys atomically: every write lands or none do."""
        pipe = self._client.pipeline(transaction=True)
        for key, value in values.items():
            pipe.set(key, value)
        pipe.execute()

    def delete(self, *keys: str) -> int:
        """Delete keys in one command. Returns how many existed."""
        if not keys:
            return 0
        return self._client.delete(*keys)

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        self.set(key, json.dumps(value), expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """
        Decoded JSON at key, or None when absent.

        Raises:
            ValueError: If the stored value is not valid JSON.
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def close(self) -> None:
        self._client.close()
        logger.info("ValkeyClient closed")
