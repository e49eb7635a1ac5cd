import re
from typing import Mapping
from .errors import InvalidConfigShape


class PathRewrite:
    """Ordered pattern -> replacement rules; the first matching rule wins."""

    def __init__(self, rules: Mapping[str, str]) -> None:
        self.rules = dict(rules)
        self._compiled = []
        for pattern, replacement in self.rules.items():
            try:
                self._compiled.append((re.compile(pattern), replacement))
            except re.error as e:
                raise InvalidConfigShape(f"Invalid pathRewrite pattern {pattern!r}: {e}")

    def apply(self, path: str) -> str:
        for pattern, replacement in self._compiled:
            if pattern.search(path):
                return pattern.sub(replacement, path, count=1)
        return path


def derive_path_rewrite(path_prefix: str, route: str) -> dict[str, str]:
    """Strip the proxy mount path and the route segment from forwarded paths.

    ``/api/proxy`` + ``/github`` gives ``^/api/proxy/github/?`` -> ``/`` so
    both ``/api/proxy/github`` and ``/api/proxy/github/repos`` reach the
    target with only the remainder of the path.
    """
    route_with_slash = route if route.endswith("/") else f"{route}/"

    if not path_prefix.endswith("/") and not route_with_slash.startswith("/"):
        route_with_slash = f"/{route_with_slash}"
    elif path_prefix.endswith("/") and route_with_slash.startswith("/"):
        route_with_slash = route_with_slash[1:]

    # the trailing ? makes the final slash optional
    pattern = f"^{re.escape(path_prefix)}{re.escape(route_with_slash)}?"
    return {pattern: "/"}
