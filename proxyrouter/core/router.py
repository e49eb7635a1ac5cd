import logging
from urllib.parse import urlsplit
import httpx
from starlette.types import ASGIApp
from typing import Optional
from .live_router import LiveRouter
from .proxy_config import read_proxy_config
from .routing_table import BuildPolicy

logger = logging.getLogger(__name__)


async def create_router(
    config,
    discovery,
    *,
    skip_invalid_proxies: Optional[bool] = None,
    revive_consumed_request_bodies: Optional[bool] = None,
    client: Optional[httpx.AsyncClient] = None,
    fallback: Optional[ASGIApp] = None,
) -> LiveRouter:
    """Create the proxy router for every route under the ``proxy`` config key.

    Example config::

        proxy:
          endpoints:
            simple-example: http://simple.example.com:8080
            /larger-example/v1:
              target: http://larger.example.com:8080/svc.v1
              headers:
                Authorization: Bearer ${EXAMPLE_AUTH_TOKEN}

    The router follows later config changes when the source supports
    ``subscribe``. Configuration errors in the initial load are raised.
    """
    if skip_invalid_proxies is None:
        skip_invalid_proxies = config.get_optional_boolean("proxy.skipInvalidProxies") or False
    if revive_consumed_request_bodies is None:
        revive_consumed_request_bodies = (
            config.get_optional_boolean("proxy.reviveConsumedRequestBodies") or False
        )
    policy = BuildPolicy(
        skip_invalid_proxies=skip_invalid_proxies,
        revive_consumed_request_bodies=revive_consumed_request_bodies,
    )

    external_url = await discovery.get_external_base_url("proxy")
    path_prefix = urlsplit(external_url).path
    logger.info(f"Proxy mounted at {path_prefix or '/'}")

    router = LiveRouter(path_prefix, policy, client=client, fallback=fallback, config=config)
    router.reload(read_proxy_config(config))

    if hasattr(config, "subscribe"):
        unsubscribe = config.subscribe(router.on_config_change)
        if unsubscribe is not None:
            router.add_cleanup_callback(unsubscribe)

    return router
