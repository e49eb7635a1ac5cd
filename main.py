import asyncio
import logging
import os
import uvicorn
from dotenv import load_dotenv
from redis import asyncio as redis
from proxyrouter.config.routes import PROXY_CONFIG
from proxyrouter.config.source import RedisConfigSource
from proxyrouter.core.admin_router import AdminRouter, MountAdminFirst
from proxyrouter.core.discovery import HostDiscovery
from proxyrouter.core.logging_setup import configure_logging
from proxyrouter.core.router import create_router
from proxyrouter.core.trace import TraceMiddleware

# Load environment variables from .env file
load_dotenv()
configure_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    proxy_level=os.getenv("PROXY_LOG_LEVEL", "INFO"),
)
logger = logging.getLogger("proxyrouter")


async def main() -> None:
    redis_client = redis.Redis(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        decode_responses=True,
    )
    config = RedisConfigSource(
        redis_client,
        key=os.getenv("PROXY_CONFIG_KEY", "proxy_config"),
        default=PROXY_CONFIG,
    )
    if not await config.refresh():
        logger.info("Using bundled proxy config")

    proxy = await create_router(config, HostDiscovery.from_env())
    proxy.add_cleanup_callback(redis_client.aclose)

    # Admin talks to the unwrapped router instance
    admin_app = AdminRouter(proxy, config_source=config)
    app = MountAdminFirst(admin_app, TraceMiddleware(proxy))

    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080"))))
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
