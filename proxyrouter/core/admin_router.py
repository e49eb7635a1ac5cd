import time
import logging
from typing import Optional
from starlette.types import ASGIApp, Scope, Receive, Send
from starlette.responses import PlainTextResponse, JSONResponse, Response
from proxyrouter.config.source import RedisConfigSource
from proxyrouter.core.errors import ConfigError
from proxyrouter.core.live_router import LiveRouter
from proxyrouter.core.metrics import render_prometheus_metrics
from proxyrouter.core.proxy_config import read_proxy_config

logger = logging.getLogger(__name__)


class AdminRouter:
    def __init__(
        self,
        router: LiveRouter,
        config_source: Optional[RedisConfigSource] = None,
        min_reload_interval: float = 10.0,
    ) -> None:
        self.router = router
        self.config_source = config_source
        self.min_reload_interval = min_reload_interval
        self.last_reload_request = 0.0

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        path = scope.get("path", "")
        if path == "/__health":
            await self.health(scope, receive, send)
        elif path == "/__routes":
            await self.routes(scope, receive, send)
        elif path == "/__metrics":
            await self.metrics(scope, receive, send)
        elif path == "/__reload" and scope.get("method", "") == "POST":
            await self.reload_config(scope, receive, send)
        else:
            await PlainTextResponse("Not Found", status_code=404)(scope, receive, send)

    async def health(self, scope: Scope, receive: Receive, send: Send) -> None:
        await PlainTextResponse("OK")(scope, receive, send)

    async def routes(self, scope: Scope, receive: Receive, send: Send) -> None:
        table = self.router.table
        await JSONResponse({
            "path_prefix": table.path_prefix,
            "last_reload": self.router.last_reload,
            "routes": table.describe(),
        })(scope, receive, send)

    async def metrics(self, scope: Scope, receive: Receive, send: Send) -> None:
        data, content_type = render_prometheus_metrics()
        await Response(content=data, media_type=content_type)(scope, receive, send)

    async def reload_config(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self.config_source is None:
            return await JSONResponse({"error": "No reloadable config source"},
                                      status_code=501)(scope, receive, send)

        if time.time() - self.last_reload_request < self.min_reload_interval:
            return await JSONResponse({"error": "Reload too frequent"},
                                      status_code=429)(scope, receive, send)
        self.last_reload_request = time.time()

        try:
            await self.config_source.refresh()
            # subscribers already reloaded on success; this surfaces their errors
            changed = self.router.reload(read_proxy_config(self.config_source))
        except ConfigError as e:
            logger.error(f"Reload failed: {e}")
            return await JSONResponse({"error": "Reload failed", "reason": str(e)},
                                      status_code=500)(scope, receive, send)

        logger.info(f"Reload requested through admin endpoint (changed={changed})")
        return await JSONResponse({
            "status": "Reloaded",
            "routes": list(self.router.table.handlers),
        })(scope, receive, send)


class MountAdminFirst:
    """Sends ``/__*`` paths to the admin app and everything else to the proxy."""

    def __init__(self, admin_app: ASGIApp, main_app: ASGIApp, prefix: str = "/__") -> None:
        self.admin_app = admin_app
        self.main_app = main_app
        self.prefix = prefix

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"].startswith(self.prefix):
            await self.admin_app(scope, receive, send)
        else:
            await self.main_app(scope, receive, send)
