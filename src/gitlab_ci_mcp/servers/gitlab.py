from logging import Logger
from typing import Any

from fastmcp.server import FastMCP
from fastmcp.tools import Tool
from fastmcp.tools.tool_transform import ArgTransform, TransformedTool
from fastmcp.utilities.logging import get_logger

from gitlab_ci_mcp.clients.gitlab import GitlabCIClient, get_gitlab_ci_client
from gitlab_ci_mcp.clients.models.gitlab import OwnerPerson
from gitlab_ci_mcp.servers.shared.annotations import (
    BRANCH,
    BRANCH_ARG_TRANSFORM,
    FILE_PATH_ARG_TRANSFORM,
    PROJECT_DEFAULT_BRANCH_ARG_TRANSFORM,
    PROJECT_ID,
    PROJECT_ID_ARG_TRANSFORM,
    PROJECT_WEB_URL_ARG_TRANSFORM,
)

DEFAULT_RECENT_MERGE_REQUESTS = 20


def description(description: str, /) -> ArgTransform:
    return ArgTransform(description=description)


class GitlabCIServer:
    gitlab_client: GitlabCIClient
    logger: Logger

    def __init__(self, gitlab_client: GitlabCIClient | None = None, logger: Logger | None = None):
        self.logger = logger or get_logger(name=__name__)
        self.gitlab_client = gitlab_client or get_gitlab_ci_client()

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        for tool in self.passthrough_tools().values():
            _ = fastmcp.add_tool(tool=tool)

        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.get_code_owners))

        return fastmcp

    def passthrough_tools(self) -> dict[str, TransformedTool]:
        project_id_args = {
            "project_id": PROJECT_ID_ARG_TRANSFORM,
        }

        get_project_details_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_project_details),
            description="Get the metadata of a GitLab project like its name, web URL and default branch.",
            transform_args={
                "project_slug": description("The full path of the project, for example `group/subgroup/project`."),
            },
        )

        get_pipelines_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_pipeline_summary),
            name="get_pipelines",
            description="Get the CI pipelines of a GitLab project.",
            transform_args={**project_id_args},
        )

        get_issues_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_issues_summary),
            name="get_issues",
            description="Get the issues of a GitLab project.",
            transform_args={**project_id_args},
        )

        get_merge_requests_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_merge_requests_summary),
            name="get_merge_requests",
            description="Get the merge requests of a GitLab project.",
            transform_args={**project_id_args},
        )

        get_recent_merge_requests_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_merge_requests_status_summary),
            name="get_recent_merge_requests",
            description="Get the most recent merge requests of a GitLab project.",
            transform_args={
                **project_id_args,
                "count": ArgTransform(description="The number of merge requests to get.", default=DEFAULT_RECENT_MERGE_REQUESTS),
            },
        )

        get_contributors_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_contributors_summary),
            name="get_contributors",
            description="Get the contributors of a GitLab project with their commit counts and avatars.",
            transform_args={**project_id_args},
        )

        get_languages_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_languages_summary),
            name="get_languages",
            description="Get the languages of a GitLab project and the share of the repository written in each.",
            transform_args={**project_id_args},
        )

        get_releases_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_releases_summary),
            name="get_releases",
            description="Get the releases of a GitLab project.",
            transform_args={**project_id_args},
        )

        get_readme_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_readme),
            description="Get the raw content of the README of a GitLab project.",
            transform_args={
                **project_id_args,
                "branch": BRANCH_ARG_TRANSFORM,
                "file_path": FILE_PATH_ARG_TRANSFORM,
            },
        )

        get_user_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_user_detail),
            name="get_user",
            description="Get a GitLab user by username. Fails if the user does not exist.",
            transform_args={
                "handle": description("The username of the user, with or without a leading `@`."),
            },
        )

        link_args = {
            "project_web_url": PROJECT_WEB_URL_ARG_TRANSFORM,
            "project_default_branch": PROJECT_DEFAULT_BRANCH_ARG_TRANSFORM,
        }

        get_contributors_link_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_contributors_link),
            description="Build a link to the contributors graph of a GitLab project.",
            transform_args={**link_args},
        )

        get_owners_link_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.gitlab_client.get_owners_link),
            description="Build a link to the CODEOWNERS file of a GitLab project.",
            transform_args={
                **link_args,
                "code_owners_path": description("The path of the CODEOWNERS file. Defaults to the configured path."),
            },
        )

        return {
            tool.name: tool
            for tool in [
                get_project_details_tool,
                get_pipelines_tool,
                get_issues_tool,
                get_merge_requests_tool,
                get_recent_merge_requests_tool,
                get_contributors_tool,
                get_languages_tool,
                get_releases_tool,
                get_readme_tool,
                get_user_tool,
                get_contributors_link_tool,
                get_owners_link_tool,
            ]
        }

    async def get_code_owners(self, project_id: PROJECT_ID, branch: BRANCH = "HEAD") -> list[OwnerPerson]:
        """Get the code owners of a GitLab project and the file patterns each of them owns."""

        return await self.gitlab_client.get_code_owner_people(project_id=project_id, branch=branch)
