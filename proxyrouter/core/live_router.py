import asyncio
import json
import logging
import threading
import time
import httpx
from starlette.types import ASGIApp, Scope, Receive, Send
from starlette.responses import PlainTextResponse
from typing import Any, Callable, Mapping, Optional
from .errors import ConfigError
from .metrics import TABLE_RELOADS, ROUTES_MOUNTED
from .proxy_config import read_proxy_config
from .proxy_handler import isolate_client
from .routing_table import BuildPolicy, RouteTable, build_route_table

logger = logging.getLogger(__name__)


def _config_key(route_configs: Mapping[str, Any]) -> str:
    # order-sensitive, since declaration order is mount precedence
    return json.dumps(route_configs, default=str)


class LiveRouter:
    """ASGI app dispatching through the route table that is current at request time.

    The table is never modified; a reload builds a complete new table and
    replaces the reference in one assignment. A request reads the reference
    once and keeps using that table until it completes.
    """

    def __init__(
        self,
        path_prefix: str,
        policy: Optional[BuildPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        fallback: Optional[ASGIApp] = None,
        config=None,
        timeout: float = 30.0,
    ):
        self.path_prefix = path_prefix
        self.policy = policy or BuildPolicy()
        self.client = isolate_client(client or httpx.AsyncClient(timeout=timeout))
        self.fallback = fallback
        self.config = config
        self.last_reload = 0.0

        self._table = RouteTable(path_prefix)
        self._config_key: Optional[str] = None
        self._reload_lock = threading.Lock()

        self.cleanup_callbacks: list[Callable] = []
        self.add_cleanup_callback(self.client.aclose)

    @property
    def table(self) -> RouteTable:
        return self._table

    def reload(self, route_configs: Mapping[str, Any]) -> bool:
        """Build a table from ``route_configs`` and make it the active one.

        Returns False without rebuilding when the configuration is unchanged.
        Raises ConfigError when the table cannot be built; the active table
        is left untouched in that case.
        """
        key = _config_key(route_configs)
        with self._reload_lock:
            if key == self._config_key:
                TABLE_RELOADS.labels(outcome="unchanged").inc()
                return False
            try:
                table = build_route_table(self.path_prefix, route_configs, self.policy, self.client)
            except ConfigError:
                TABLE_RELOADS.labels(outcome="failed").inc()
                raise
            self._table = table
            self._config_key = key
            self.last_reload = time.time()

        TABLE_RELOADS.labels(outcome="applied").inc()
        ROUTES_MOUNTED.set(len(table))
        logger.info(f"Proxy route table installed with {len(table)} routes: {list(table.handlers)}")
        return True

    def on_config_change(self) -> None:
        """Subscription callback: re-read the config source and reload."""
        try:
            self.reload(read_proxy_config(self.config))
        except ConfigError as e:
            logger.error(f"Proxy config reload failed, keeping previous routes: {e}")

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        if scope["type"] != "http":
            if self.fallback is not None:
                await self.fallback(scope, receive, send)
            elif scope["type"] == "websocket":
                await send({"type": "websocket.close", "code": 1000})
            return

        await self.dispatch(scope, receive, send)

    async def dispatch(self, scope: Scope, receive: Receive, send: Send):
        table = self._table
        for handler in table.candidates(scope["path"]):
            if handler.admit(scope):
                await handler(scope, receive, send)
                return

        if self.fallback is not None:
            await self.fallback(scope, receive, send)
            return
        logger.warning(f"No route match for {scope['method']} {scope['path']}")
        await PlainTextResponse("Route not found", status_code=404)(scope, receive, send)

    def add_cleanup_callback(self, cb: Callable) -> None:
        self.cleanup_callbacks.append(cb)

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send):
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                for cb in self.cleanup_callbacks:
                    result = cb()
                    if asyncio.iscoroutine(result):
                        await result
                logger.info("[proxy] Shutdown complete. All resources closed.")
                await send({"type": "lifespan.shutdown.complete"})
                return
