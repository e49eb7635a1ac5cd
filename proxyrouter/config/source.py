"""Configuration sources for the proxy router.

A source holds one JSON-like document and answers dotted-key lookups such as
``proxy.endpoints``. Subscribers are called with no arguments whenever the
document is replaced and are expected to re-read what they need.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Mapping, Optional

from redis.asyncio import Redis

from proxyrouter.core.errors import ConfigError

logger = logging.getLogger(__name__)

_MISSING = object()


class ConfigSource:
    def __init__(self, data: Optional[Mapping[str, Any]] = None) -> None:
        self._data: Mapping[str, Any] = dict(data or {})
        self._subscribers: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    def get_optional(self, key: str) -> Any:
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, Mapping):
                return None
            node = node.get(part, _MISSING)
            if node is _MISSING:
                return None
        return node

    def get_optional_boolean(self, key: str) -> Optional[bool]:
        value = self.get_optional(key)
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise ConfigError(f"Invalid type in config for key '{key}', got {type(value).__name__}, wanted boolean")

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def update(self, data: Mapping[str, Any]) -> None:
        """Replace the whole document and notify every subscriber."""
        with self._lock:
            self._data = dict(data)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback()


class RedisConfigSource(ConfigSource):
    """Config document stored as JSON under a single Redis key."""

    def __init__(
        self,
        redis: Redis,
        key: str = "proxy_config",
        default: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(default)
        self.redis = redis
        self.key = key

    async def refresh(self) -> bool:
        """Load the document from Redis; returns False when the key is unset."""
        raw_json = await self.redis.get(self.key)
        if raw_json is None:
            logger.info(f"No proxy config stored under '{self.key}', keeping current config")
            return False
        try:
            data = json.loads(raw_json)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Proxy config under '{self.key}' is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Proxy config under '{self.key}' must be a JSON object")
        self.update(data)
        return True
