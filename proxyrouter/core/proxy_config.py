import logging
from typing import Any, Mapping
from .errors import InvalidConfigShape

logger = logging.getLogger(__name__)

DEPRECATED_ROOT_WARNING = (
    "Configuring proxy endpoints in the root 'proxy' configuration is deprecated. "
    "Move this configuration to 'proxy.endpoints' instead."
)


def read_proxy_config(config, log: logging.Logger = logger) -> dict[str, Any]:
    """Return the route -> raw config mapping from a config source.

    ``proxy.endpoints`` is the current shape. Older configs put routes
    directly under ``proxy``; any key there starting with ``/`` is taken as a
    route, with a deprecation warning.
    """
    endpoints = config.get_optional("proxy.endpoints")
    if endpoints:
        if not isinstance(endpoints, Mapping):
            raise InvalidConfigShape("proxy configuration must be an object")
        return dict(endpoints)

    root = config.get_optional("proxy")
    if not root:
        return {}
    if not isinstance(root, Mapping):
        raise InvalidConfigShape("deprecated proxy configuration must be an object")

    root_endpoints = {key: value for key, value in root.items()
                      if isinstance(key, str) and key.startswith("/")}
    if not root_endpoints:
        return {}

    log.warning(DEPRECATED_ROOT_WARNING)
    return root_endpoints
