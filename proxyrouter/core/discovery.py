import os


class HostDiscovery:
    """Resolves plugin base URLs when every plugin is served from one host."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "HostDiscovery":
        return cls(os.getenv("PROXY_EXTERNAL_BASE_URL", "http://localhost:8080"))

    async def get_external_base_url(self, plugin_id: str) -> str:
        """External URL of ``plugin_id``, without a trailing slash."""
        return f"{self.base_url}/api/{plugin_id}"
