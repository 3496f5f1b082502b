from logging import Logger
from typing import Literal

import click
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.utilities.logging import get_logger

from gitlab_ci_mcp.clients.gitlab import GitlabCIClient
from gitlab_ci_mcp.servers.gitlab import GitlabCIServer


def new_mcp_server(gitlab_client: GitlabCIClient | None = None) -> FastMCP[None]:
    logger: Logger = get_logger(name=__name__)

    mcp: FastMCP[None] = FastMCP[None](name="GitLab CI MCP")

    mcp.add_middleware(middleware=LoggingMiddleware(include_payloads=True, logger=logger))

    gitlab_server: GitlabCIServer = GitlabCIServer(gitlab_client=gitlab_client, logger=logger)
    _ = gitlab_server.register_tools(fastmcp=mcp)

    return mcp


@click.command()
@click.option(
    "--mcp-transport",
    type=click.Choice(["stdio", "streamable-http"]),
    default="stdio",
    help="The transport to run the MCP server on",
)
def run_mcp(mcp_transport: Literal["stdio", "streamable-http"]):
    mcp: FastMCP[None] = new_mcp_server()
    mcp.run(transport=mcp_transport)


if __name__ == "__main__":
    run_mcp()
