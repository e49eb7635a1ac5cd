from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import httpx

from .errors import InvalidConfigShape, InvalidTarget


@dataclass(frozen=True)
class SimpleRoute:
    target: Any


@dataclass(frozen=True)
class DetailedRoute:
    target: Any
    headers: Optional[Mapping[str, str]] = None
    allowed_methods: Optional[list[str]] = None
    allowed_headers: Optional[list[str]] = None
    path_rewrite: Optional[Mapping[str, str]] = None
    change_origin: Optional[bool] = None
    revive_request_body: Optional[bool] = None
    timeout: Optional[float] = None
    extra: Mapping[str, Any] = field(default_factory=dict)


RawRoute = Union[SimpleRoute, DetailedRoute]


@dataclass(frozen=True)
class RouteConfig:
    route: str
    target: str
    allowed_methods: Optional[frozenset[str]] = None
    allowed_headers: frozenset[str] = frozenset()
    path_rewrite: Optional[dict[str, str]] = None
    change_origin: bool = True
    headers: dict[str, str] = field(default_factory=dict)
    revive_request_body: Optional[bool] = None
    timeout: Optional[float] = None
    extra: dict[str, Any] = field(default_factory=dict)


# schema spelling -> field name
_FIELD_ALIASES = {
    "target": "target",
    "headers": "headers",
    "allowedMethods": "allowed_methods",
    "allowed_methods": "allowed_methods",
    "allowedHeaders": "allowed_headers",
    "allowed_headers": "allowed_headers",
    "pathRewrite": "path_rewrite",
    "path_rewrite": "path_rewrite",
    "changeOrigin": "change_origin",
    "change_origin": "change_origin",
    "reviveRequestBody": "revive_request_body",
    "revive_request_body": "revive_request_body",
    "timeout": "timeout",
}


def classify(raw: Any) -> RawRoute:
    """Turn a raw config value (URL string or mapping) into a route variant."""
    if isinstance(raw, str):
        return SimpleRoute(target=raw)
    if not isinstance(raw, Mapping):
        raise InvalidConfigShape(
            f"Proxy route configuration must be a URL string or an object, got {type(raw).__name__}"
        )

    fields: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in raw.items():
        name = _FIELD_ALIASES.get(key)
        if name is None:
            extra[key] = value
        else:
            fields[name] = value
    fields.setdefault("target", None)
    return DetailedRoute(extra=extra, **fields)


def validate_target(target: Any) -> str:
    if not isinstance(target, str):
        raise InvalidTarget("Proxy target must be a string")
    try:
        url = httpx.URL(target)
    except httpx.InvalidURL:
        raise InvalidTarget(f"Proxy target is not a valid URL: {target}")
    if not url.scheme or not url.host:
        raise InvalidTarget(f"Proxy target is not a valid URL: {target}")
    return target


def _string_list(route: str, key: str, value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise InvalidConfigShape(f"{key} for proxy route {route} must be a list of strings")
    return list(value)


def _string_map(route: str, key: str, value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        raise InvalidConfigShape(f"{key} for proxy route {route} must be an object")
    return {str(k): str(v) for k, v in value.items()}


def _optional_bool(route: str, key: str, value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    raise InvalidConfigShape(f"{key} for proxy route {route} must be a boolean")


def resolve(route: str, raw: Any) -> RouteConfig:
    """Validate a raw route value and resolve it into a single RouteConfig.

    Raises InvalidTarget for a missing or malformed target and
    InvalidConfigShape for any other field of the wrong type.
    """
    variant = classify(raw)
    target = validate_target(variant.target)

    if isinstance(variant, SimpleRoute):
        return RouteConfig(route=route, target=target)

    allowed_methods = None
    if variant.allowed_methods is not None:
        allowed_methods = frozenset(
            m.upper() for m in _string_list(route, "allowedMethods", variant.allowed_methods)
        )

    allowed_headers = frozenset()
    if variant.allowed_headers is not None:
        allowed_headers = frozenset(
            h.lower() for h in _string_list(route, "allowedHeaders", variant.allowed_headers)
        )

    path_rewrite = None
    if variant.path_rewrite is not None:
        path_rewrite = _string_map(route, "pathRewrite", variant.path_rewrite)

    headers = {}
    if variant.headers is not None:
        headers = _string_map(route, "headers", variant.headers)

    timeout = variant.timeout
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float))):
        raise InvalidConfigShape(f"timeout for proxy route {route} must be a number")

    return RouteConfig(
        route=route,
        target=target,
        allowed_methods=allowed_methods,
        allowed_headers=allowed_headers,
        path_rewrite=path_rewrite,
        change_origin=_optional_bool(route, "changeOrigin", variant.change_origin) is not False,
        headers=headers,
        revive_request_body=_optional_bool(route, "reviveRequestBody", variant.revive_request_body),
        timeout=float(timeout) if timeout is not None else None,
        extra=dict(variant.extra),
    )
