import logging
import anyio
import pytest
import httpx
from httpx import ASGITransport
from asgi_lifespan import LifespanManager
from starlette.requests import Request
from starlette.responses import JSONResponse
from proxyrouter.config.source import ConfigSource
from proxyrouter.core.discovery import HostDiscovery
from proxyrouter.core.errors import InvalidConfigShape, RouteCompileFailure
from proxyrouter.core.live_router import LiveRouter
from proxyrouter.core.router import create_router
from proxyrouter.core.routing_table import BuildPolicy
from tests.fixtures.mock_backends import host_backend

DISCOVERY = HostDiscovery("http://localhost:7007")
ROUTES = {
    "/a": "http://a-v1.local",
    "/b": "http://b-v1.local",
    "/c": "http://c-v1.local",
}


def upstream_client(app=host_backend):
    return httpx.AsyncClient(transport=ASGITransport(app=app))


async def hosts(client: httpx.AsyncClient) -> dict[str, str]:
    result = {}
    for route in ("a", "b", "c"):
        res = await client.get(f"/api/proxy/{route}/x")
        result[route] = res.json()["host"] if res.status_code == 200 else res.status_code
    return result


@pytest.mark.anyio
async def test_reload_swaps_only_changed_targets():
    config = ConfigSource({"proxy": {"endpoints": dict(ROUTES)}})
    router = await create_router(config, DISCOVERY, client=upstream_client())

    async with LifespanManager(router):
        async with httpx.AsyncClient(transport=ASGITransport(app=router), base_url="http://test") as client:
            assert await hosts(client) == {"a": "a-v1.local", "b": "b-v1.local", "c": "c-v1.local"}

            config.update({"proxy": {"endpoints": {**ROUTES, "/b": "http://b-v2.local"}}})

            assert await hosts(client) == {"a": "a-v1.local", "b": "b-v2.local", "c": "c-v1.local"}
            assert list(router.table.handlers) == ["/a", "/b", "/c"]


@pytest.mark.anyio
async def test_unchanged_config_does_not_rebuild():
    config = ConfigSource({"proxy": {"endpoints": dict(ROUTES)}})
    router = await create_router(config, DISCOVERY, client=upstream_client())
    table = router.table

    config.update({"proxy": {"endpoints": dict(ROUTES)}})

    assert router.table is table
    assert router.reload(dict(ROUTES)) is False


@pytest.mark.anyio
async def test_reordered_config_is_a_change():
    router = LiveRouter("/api/proxy", client=upstream_client())
    assert router.reload({"/a": "http://a.local", "/b": "http://b.local"}) is True
    assert router.reload({"/b": "http://b.local", "/a": "http://a.local"}) is True
    assert list(router.table.handlers) == ["/b", "/a"]


@pytest.mark.anyio
async def test_in_flight_request_finishes_on_the_old_table():
    entered = anyio.Event()
    release = anyio.Event()

    async def slow_backend(scope, receive, send):
        request = Request(scope, receive)
        if request.url.path == "/slow":
            entered.set()
            await release.wait()
        await JSONResponse({"host": request.headers.get("host")})(scope, receive, send)

    router = LiveRouter("/api/proxy", client=upstream_client(slow_backend))
    router.reload({"/b": "http://b-v1.local"})
    results = {}

    async with httpx.AsyncClient(transport=ASGITransport(app=router), base_url="http://test") as client:
        async def slow_request():
            res = await client.get("/api/proxy/b/slow")
            results["slow"] = res.json()["host"]

        async with anyio.create_task_group() as tg:
            tg.start_soon(slow_request)
            await entered.wait()

            router.reload({"/b": "http://b-v2.local"})
            res = await client.get("/api/proxy/b/fast")
            results["fast"] = res.json()["host"]
            release.set()

    assert results == {"slow": "b-v1.local", "fast": "b-v2.local"}


@pytest.mark.anyio
async def test_failed_reload_keeps_previous_table(caplog):
    caplog.set_level(logging.ERROR)
    config = ConfigSource({"proxy": {"endpoints": dict(ROUTES)}})
    router = await create_router(config, DISCOVERY, client=upstream_client())
    table = router.table

    config.update({"proxy": {"endpoints": {**ROUTES, "/bad": "not a url"}}})

    assert router.table is table
    assert "keeping previous routes" in caplog.text

    with pytest.raises(RouteCompileFailure):
        router.reload({**ROUTES, "/bad": "not a url"})
    assert router.table is table


@pytest.mark.anyio
async def test_skip_invalid_proxies_from_config(caplog):
    caplog.set_level(logging.WARNING)
    config = ConfigSource({"proxy": {
        "skipInvalidProxies": True,
        "endpoints": {**ROUTES, "/bad": "not a url"},
    }})
    router = await create_router(config, DISCOVERY, client=upstream_client())

    assert list(router.table.handlers) == ["/a", "/b", "/c"]
    assert "skipped configuring /bad" in caplog.text


@pytest.mark.anyio
async def test_invalid_route_fails_router_creation():
    config = ConfigSource({"proxy": {"endpoints": {**ROUTES, "/bad": "not a url"}}})

    with pytest.raises(RouteCompileFailure):
        await create_router(config, DISCOVERY, client=upstream_client())


@pytest.mark.anyio
async def test_invalid_shape_is_fatal_even_when_skipping():
    config = ConfigSource({"proxy": {"endpoints": ["/a"]}})

    with pytest.raises(InvalidConfigShape):
        await create_router(config, DISCOVERY, skip_invalid_proxies=True, client=upstream_client())


@pytest.mark.anyio
async def test_explicit_options_override_config():
    config = ConfigSource({"proxy": {
        "skipInvalidProxies": False,
        "reviveConsumedRequestBodies": False,
        "endpoints": {"/bad": "not a url"},
    }})
    router = await create_router(
        config, DISCOVERY,
        skip_invalid_proxies=True,
        revive_consumed_request_bodies=True,
        client=upstream_client(),
    )

    assert router.policy == BuildPolicy(skip_invalid_proxies=True, revive_consumed_request_bodies=True)
    assert len(router.table) == 0


@pytest.mark.anyio
async def test_path_prefix_comes_from_discovery():
    config = ConfigSource({"proxy": {"/legacy": "http://legacy.local"}})
    router = await create_router(config, HostDiscovery("http://backstage.example/base/"),
                                 client=upstream_client())

    assert router.path_prefix == "/base/api/proxy"

    async with httpx.AsyncClient(transport=ASGITransport(app=router), base_url="http://test") as client:
        res = await client.get("/base/api/proxy/legacy/deep/path")
        assert res.json() == {"host": "legacy.local", "path": "/deep/path"}


@pytest.mark.anyio
async def test_shutdown_unsubscribes_from_config():
    config = ConfigSource({"proxy": {"endpoints": dict(ROUTES)}})
    router = await create_router(config, DISCOVERY, client=upstream_client())
    table = router.table

    async with LifespanManager(router):
        pass

    config.update({"proxy": {"endpoints": {"/z": "http://z.local"}}})
    assert router.table is table
