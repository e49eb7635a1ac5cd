import logging
from typing import Any
import httpx
from .header_policy import HeaderPolicy
from .path_rewrite import PathRewrite, derive_path_rewrite
from .proxy_handler import ProxyHandler, RouteLogAdapter
from .route_config import resolve

logger = logging.getLogger(__name__)
proxy_logger = logging.getLogger("proxyrouter.proxy")


def compile_route(
    path_prefix: str,
    route: str,
    raw_config: Any,
    revive_consumed_request_bodies: bool,
    client: httpx.AsyncClient,
) -> ProxyHandler:
    """Build the forwarding handler for one route.

    ``raw_config`` is either a target URL or a mapping in the proxy config
    schema. Raises InvalidTarget or InvalidConfigShape before anything is
    built, so a failed compile has nothing to undo.
    """
    config = resolve(route, raw_config)

    rules = config.path_rewrite
    if rules is None:
        rules = derive_path_rewrite(path_prefix, route)

    header_policy = HeaderPolicy(
        allowed_headers=config.allowed_headers,
        injected_headers=config.headers.keys(),
    )

    revive = config.revive_request_body
    if revive is None:
        revive = revive_consumed_request_bodies

    if config.extra:
        logger.debug(f"Ignoring unsupported options for {route}: {sorted(config.extra)}")

    return ProxyHandler(
        config=config,
        path_rewrite=PathRewrite(rules),
        header_policy=header_policy,
        client=client,
        revive_request_body=revive,
        logger=RouteLogAdapter(proxy_logger, {"route": route}),
    )
