import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional
import httpx
from .errors import ConfigError, RouteCompileFailure
from .proxy_handler import ProxyHandler
from .route_compiler import compile_route

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildPolicy:
    skip_invalid_proxies: bool = False
    revive_consumed_request_bodies: bool = False


def mount_path(route: str) -> str:
    """Normalize a route key into the path it is mounted under (``github`` -> ``/github``)."""
    return "/" + route.strip("/")


def _mounted_at(mount: str, path: str) -> bool:
    if mount == "/":
        return True
    return path == mount or path.startswith(mount + "/")


class RouteTable:
    """Read-only, ordered mount table of compiled route handlers."""

    def __init__(self, path_prefix: str, handlers: Optional[Mapping[str, ProxyHandler]] = None):
        self.path_prefix = path_prefix.rstrip("/")
        self._handlers = MappingProxyType(dict(handlers or {}))

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, mount: str) -> bool:
        return mount in self._handlers

    @property
    def handlers(self) -> Mapping[str, ProxyHandler]:
        return self._handlers

    def candidates(self, path: str) -> Iterator[ProxyHandler]:
        """Handlers mounted over ``path``, in declaration order."""
        if self.path_prefix:
            if not _mounted_at(self.path_prefix, path):
                return
            path = path[len(self.path_prefix):] or "/"
        for mount, handler in self._handlers.items():
            if _mounted_at(mount, path):
                yield handler

    def describe(self) -> dict[str, dict[str, Any]]:
        return {
            mount: {
                "route": handler.route,
                "target": handler.config.target,
                "path_rewrite": handler.path_rewrite.rules,
                "allowed_methods": sorted(handler.config.allowed_methods)
                if handler.config.allowed_methods is not None else None,
            }
            for mount, handler in self._handlers.items()
        }


def build_route_table(
    path_prefix: str,
    route_configs: Mapping[str, Any],
    policy: BuildPolicy,
    client: httpx.AsyncClient,
) -> RouteTable:
    """Compile every configured route into a new RouteTable.

    Routes are mounted in the order of ``route_configs``. A route that fails
    to compile is skipped with a warning when ``policy.skip_invalid_proxies``
    is set; otherwise the whole build fails with RouteCompileFailure.
    """
    handlers: dict[str, ProxyHandler] = {}
    for route, raw_config in route_configs.items():
        try:
            handler = compile_route(
                path_prefix,
                route,
                raw_config,
                policy.revive_consumed_request_bodies,
                client,
            )
        except ConfigError as e:
            if policy.skip_invalid_proxies:
                logger.warning(f"skipped configuring {route} due to {e}")
                continue
            raise RouteCompileFailure(route, e) from e
        handlers[mount_path(route)] = handler
    return RouteTable(path_prefix, handlers)
