import os
from typing import Protocol, runtime_checkable


@runtime_checkable
class ProxyDiscovery(Protocol):
    """Resolves the base URL of the proxy that fronts the GitLab API."""

    async def resolve_proxy_base_url(self) -> str: ...


class StaticProxyDiscovery:
    """A discovery that always resolves to the same proxy base URL."""

    proxy_base_url: str

    def __init__(self, proxy_base_url: str):
        self.proxy_base_url = proxy_base_url.rstrip("/")

    async def resolve_proxy_base_url(self) -> str:
        return self.proxy_base_url


def get_proxy_base_url() -> str:
    if proxy_base_url := os.getenv("GITLAB_PROXY_BASE_URL"):
        return proxy_base_url
    msg = "GITLAB_PROXY_BASE_URL must be set"
    raise ValueError(msg)


def get_proxy_discovery() -> ProxyDiscovery:
    return StaticProxyDiscovery(proxy_base_url=get_proxy_base_url())
