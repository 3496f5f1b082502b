from collections.abc import AsyncGenerator, Sequence
from typing import Any, overload

import httpx
import pytest
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import StructuredLoggingMiddleware
from pydantic import BaseModel

from gitlab_ci_mcp.clients.discovery import StaticProxyDiscovery
from gitlab_ci_mcp.clients.gitlab import GitlabCIClient

PROXY_BASE_URL = "http://backstage.test/api/proxy"
PROXY_PATH = "/gitlabci"

ParamsKey = tuple[tuple[str, str], ...] | None


class FakeGitlabProxy:
    """Serves canned GitLab API responses from behind a fake proxy and records every request."""

    routes: dict[tuple[str, ParamsKey], tuple[int, dict[str, Any]] | Exception]
    requests: list[httpx.Request]
    proxy_path: str

    def __init__(self, proxy_path: str = PROXY_PATH):
        self.routes = {}
        self.requests = []
        self.proxy_path = proxy_path

    def add(
        self,
        path: str,
        json: Any = None,  # pyright: ignore[reportAny]
        text: str | None = None,
        status_code: int = 200,
        params: dict[str, str] | None = None,
        exception: Exception | None = None,
    ) -> None:
        key = (f"/api/proxy{self.proxy_path}/{path}", tuple(sorted(params.items())) if params is not None else None)

        if exception is not None:
            self.routes[key] = exception
        elif text is not None:
            self.routes[key] = (status_code, {"text": text})
        else:
            self.routes[key] = (status_code, {"json": json})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        raw_path = request.url.raw_path.decode().split("?")[0]
        params = tuple(sorted(request.url.params.items()))

        route = self.routes.get((raw_path, params))
        if route is None:
            route = self.routes.get((raw_path, None))

        if route is None:
            return httpx.Response(status_code=404, json={"message": "404 Not Found"})

        if isinstance(route, Exception):
            raise route

        status_code, content = route

        return httpx.Response(status_code=status_code, **content)

    def request_paths(self) -> list[str]:
        return [request.url.raw_path.decode() for request in self.requests]


class FailingProxyDiscovery:
    async def resolve_proxy_base_url(self) -> str:
        msg = "The proxy could not be discovered"
        raise RuntimeError(msg)


@pytest.fixture
def gitlab_proxy() -> FakeGitlabProxy:
    return FakeGitlabProxy()


@pytest.fixture
async def http_client(gitlab_proxy: FakeGitlabProxy) -> AsyncGenerator[httpx.AsyncClient, Any]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(gitlab_proxy.handle)) as http_client:
        yield http_client


@pytest.fixture
def gitlab_client(http_client: httpx.AsyncClient) -> GitlabCIClient:
    return GitlabCIClient(discovery=StaticProxyDiscovery(proxy_base_url=PROXY_BASE_URL), http_client=http_client)


@pytest.fixture
def logging_middleware() -> StructuredLoggingMiddleware:
    return StructuredLoggingMiddleware(include_payloads=True)


@pytest.fixture
def fastmcp(logging_middleware: StructuredLoggingMiddleware):
    return FastMCP(
        name="GitLab CI MCP",
        middleware=[logging_middleware],
    )


# Canned GitLab records


PROJECT = {
    "id": 42,
    "name": "Widget Service",
    "path_with_namespace": "acme/widget-service",
    "web_url": "https://gitlab.example.com/acme/widget-service",
    "default_branch": "main",
    "readme_url": "https://gitlab.example.com/acme/widget-service/-/blob/main/README.md",
    "star_count": 7,
}

ALICE = {
    "id": 1,
    "name": "Alice Liddell",
    "username": "alice",
    "state": "active",
    "avatar_url": "https://gitlab.example.com/uploads/alice.png",
    "web_url": "https://gitlab.example.com/alice",
}

BOB = {
    "id": 2,
    "name": "Bob Builder",
    "username": "bob",
    "state": "active",
    "avatar_url": "https://gitlab.example.com/uploads/bob.png",
    "web_url": "https://gitlab.example.com/bob",
    "public_email": "bob@example.com",
}


def handle_exclude_keys(dictionary: dict[str, Any], exclude_keys: list[str] | None = None) -> dict[str, Any]:
    if exclude_keys is None:
        return dictionary
    return {key: value for key, value in dictionary.items() if key not in exclude_keys}


@overload
def dump_for_snapshot(
    basemodel: None,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> None:
    return None


@overload
def dump_for_snapshot(
    basemodel: BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any]:
    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_for_snapshot(
    basemodel: None | BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any] | None:
    if basemodel is None:
        return None

    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_list_for_snapshot(
    basemodel: None | Sequence[BaseModel],
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> list[dict[str, Any]] | None:
    if basemodel is None:
        return []

    return [dump_for_snapshot(item, exclude_keys, exclude_none, **dump_kwargs) for item in basemodel]
