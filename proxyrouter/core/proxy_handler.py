import time
import logging
from http.cookiejar import CookieJar, DefaultCookiePolicy
from urllib.parse import quote
import httpx
from starlette.types import Scope, Receive, Send
from starlette.responses import PlainTextResponse
from typing import Optional
from .body_revival import revive_body
from .header_policy import HeaderPolicy
from .metrics import REQUEST_COUNT, REQUEST_DURATION, ACTIVE_REQUESTS
from .path_rewrite import PathRewrite
from .route_config import RouteConfig


def isolate_client(client: httpx.AsyncClient) -> httpx.AsyncClient:
    """Strip per-client state from a client shared by every proxied request.

    The cookie jar refuses every cookie, so one caller's upstream session is
    never replayed for another, and the client default headers are dropped
    so upstream only sees the filtered and injected headers.
    """
    client.cookies = CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))
    for name in list(client.headers.keys()):
        del client.headers[name]
    return client


class RouteLogAdapter(logging.LoggerAdapter):
    """Prefixes proxy log lines with the route they belong to."""

    def process(self, msg, kwargs):
        return f"[{self.extra['route']}] {msg}", kwargs


class ProxyHandler:
    """Forwards the requests of a single route to its upstream target.

    Every request moves through the same stages, in this order:

    1. ``admit`` filters the inbound headers in place and checks the method.
       Nothing has been sent upstream at this point, so the filtered header
       set is the only one the upstream can ever see. A request that is not
       admitted falls through to the next route.
    2. ``__call__`` reads (or revives) the body, rewrites the path and sends
       the request upstream.
    3. The upstream response headers are filtered before the response start
       message goes out to the client; the body is streamed back unchanged.
    """

    def __init__(
        self,
        config: RouteConfig,
        path_rewrite: PathRewrite,
        header_policy: HeaderPolicy,
        client: httpx.AsyncClient,
        revive_request_body: bool = False,
        logger: Optional[logging.LoggerAdapter] = None,
    ):
        self.config = config
        self.route = config.route
        self.target_url = httpx.URL(config.target)
        self.path_rewrite = path_rewrite
        self.header_policy = header_policy
        self.client = client
        self.revive_request_body = revive_request_body
        self.logger = logger or RouteLogAdapter(logging.getLogger(__name__), {"route": config.route})

    def admit(self, scope: Scope) -> bool:
        self.header_policy.filter_request_headers(scope)
        if self.config.allowed_methods is None:
            return True
        return scope["method"] in self.config.allowed_methods

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        method = scope["method"]
        path = scope["path"]
        query = scope.get("query_string", b"")

        target_url = self._construct_target_url(self._raw_path(scope), query)
        headers = self._outgoing_headers(scope)

        body = revive_body(scope, headers) if self.revive_request_body else None
        if body is None:
            body = await self._read_body(receive)

        self.logger.debug(f"{method} {path} -> {target_url}")
        request = self.client.build_request(
            method,
            target_url,
            headers=headers,
            content=body,
            timeout=self.config.timeout if self.config.timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )

        ACTIVE_REQUESTS.inc()
        start = time.time()
        try:
            upstream = await self.client.send(request, stream=True)
        except httpx.TimeoutException as e:
            self.logger.error(f"Timeout proxying {method} {path} to {target_url}: {e}")
            REQUEST_COUNT.labels(method=method, route=self.route, status="504").inc()
            await PlainTextResponse("Upstream timeout", status_code=504)(scope, receive, send)
            return
        except httpx.RequestError as e:
            self.logger.error(f"Error proxying {method} {path} to {target_url}: {e}")
            REQUEST_COUNT.labels(method=method, route=self.route, status="502").inc()
            await PlainTextResponse("Upstream error", status_code=502)(scope, receive, send)
            return
        finally:
            ACTIVE_REQUESTS.dec()
            REQUEST_DURATION.labels(route=self.route).observe(time.time() - start)

        try:
            self.header_policy.filter_response_headers(upstream.headers)
            REQUEST_COUNT.labels(method=method, route=self.route,
                                 status=str(upstream.status_code)).inc()
            await self._send_response(send, upstream)
        finally:
            await upstream.aclose()

    def _raw_path(self, scope: Scope) -> str:
        """The request path as received, percent-escapes intact."""
        raw_path = scope.get("raw_path")
        if not raw_path:
            return quote(scope["path"])
        # some servers leave the query on raw_path
        return raw_path.split(b"?", 1)[0].decode("latin-1")

    def _construct_target_url(self, raw_path: str, query: bytes) -> httpx.URL:
        rewritten = self.path_rewrite.apply(raw_path)
        base_path = self.target_url.raw_path.split(b"?", 1)[0].decode("ascii")
        url = self.target_url.copy_with(path=f"{base_path.rstrip('/')}/{rewritten.lstrip('/')}")

        merged_query = b"&".join(q for q in (self.target_url.query, query) if q)
        if merged_query:
            url = url.copy_with(query=merged_query)
        return url

    def _outgoing_headers(self, scope: Scope) -> list[tuple[str, str]]:
        injected = {name.lower() for name in self.config.headers}
        headers = []
        for name, value in scope.get("headers", []):
            lname = name.decode("latin-1").lower()
            # the client recomputes framing from the body actually sent
            if lname in injected or lname in ("content-length", "transfer-encoding"):
                continue
            if lname == "host" and self.config.change_origin:
                continue
            headers.append((lname, value.decode("latin-1")))

        headers.extend(self.config.headers.items())

        if not any(name.lower() == "accept-encoding" for name, _ in headers):
            headers.append(("accept-encoding", "identity"))
        return headers

    async def _read_body(self, receive: Receive) -> bytes:
        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
        return body

    async def _send_response(self, send: Send, upstream: httpx.Response):
        await send({
            "type": "http.response.start",
            "status": upstream.status_code,
            "headers": [(name.lower(), value) for name, value in upstream.headers.raw],
        })
        async for chunk in upstream.aiter_raw():
            await send({"type": "http.response.body", "body": chunk, "more_body": True})
        await send({"type": "http.response.body", "body": b"", "more_body": False})
