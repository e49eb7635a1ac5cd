import json
import fakeredis
import pytest
from proxyrouter.config.source import RedisConfigSource
from proxyrouter.core.errors import ConfigError


@pytest.mark.anyio
async def test_refresh_loads_the_stored_document_and_notifies():
    fake_redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    await fake_redis.set("proxy_config", json.dumps({"proxy": {"endpoints": {"/a": "http://a"}}}))
    source = RedisConfigSource(fake_redis)
    calls = []
    source.subscribe(lambda: calls.append(source.get_optional("proxy.endpoints")))

    assert await source.refresh() is True
    assert calls == [{"/a": "http://a"}]


@pytest.mark.anyio
async def test_missing_key_keeps_the_default_document():
    fake_redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    source = RedisConfigSource(fake_redis, key="other", default={"proxy": {"/a": "http://a"}})

    assert await source.refresh() is False
    assert source.get_optional("proxy") == {"/a": "http://a"}


@pytest.mark.anyio
@pytest.mark.parametrize("stored", ["{not json", json.dumps(["/a"])])
async def test_bad_documents_are_config_errors(stored):
    fake_redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    await fake_redis.set("proxy_config", stored)
    source = RedisConfigSource(fake_redis)

    with pytest.raises(ConfigError):
        await source.refresh()
