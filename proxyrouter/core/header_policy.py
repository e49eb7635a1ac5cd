from typing import Iterable, Optional
import httpx
from starlette.types import Scope

# Always allowed in both directions.
SAFE_FORWARD_HEADERS = frozenset({
    # https://fetch.spec.whatwg.org/#cors-safelisted-request-header
    "cache-control",
    "content-language",
    "content-length",
    "content-type",
    "expires",
    "last-modified",
    "pragma",
    # rewritten to the target when change_origin is on, forwarded as-is otherwise
    "host",
    "accept",
    "accept-language",
    "user-agent",
})


class HeaderPolicy:
    def __init__(
        self,
        allowed_headers: Optional[Iterable[str]] = None,
        injected_headers: Optional[Iterable[str]] = None,
    ) -> None:
        allowed = {h.lower() for h in (allowed_headers or [])}
        injected = {h.lower() for h in (injected_headers or [])}
        self.request_allow_list = frozenset(SAFE_FORWARD_HEADERS | injected | allowed)
        # injected headers are ours, never the upstream's
        self.response_allow_list = frozenset(SAFE_FORWARD_HEADERS | allowed)

    def filter_request_headers(self, scope: Scope) -> None:
        """Drop every inbound header outside the request allow list.

        Mutates ``scope["headers"]`` in place so that later middleware and the
        outbound request only ever see the filtered set. Must run before the
        upstream request is built.
        """
        headers = scope.get("headers")
        if headers is None:
            return
        filtered = [
            (name, value) for name, value in headers
            if name.decode("latin-1").lower() in self.request_allow_list
        ]
        if isinstance(headers, list):
            headers[:] = filtered
        else:
            scope["headers"] = filtered

    def filter_response_headers(self, headers: httpx.Headers) -> None:
        """Drop every upstream header outside the response allow list, in place."""
        for name in list(headers.keys()):
            if name.lower() not in self.response_allow_list:
                del headers[name]
