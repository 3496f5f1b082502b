import asyncio
import os
from collections.abc import Callable, Mapping
from functools import cache
from logging import Logger, getLogger
from types import TracebackType
from typing import Any, Self, TypeVar
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from gitlab_ci_mcp.clients.discovery import ProxyDiscovery, get_proxy_discovery
from gitlab_ci_mcp.clients.errors.gitlab import ClientError, DecodeError, RequestError, ResourceNotFoundError
from gitlab_ci_mcp.clients.models.gitlab import (
    Contributor,
    IssueRecord,
    LanguagesSummary,
    MergeRequestRecord,
    OwnerEntry,
    OwnerPerson,
    PipelineRecord,
    ProjectDetails,
    ProjectNameAnnotated,
    ProjectRef,
    ReleaseRecord,
    UserProfile,
)
from gitlab_ci_mcp.codeowners import group_patterns_by_owner, parse_code_owners, strip_relative_prefix
from gitlab_ci_mcp.utilities.links import get_contributors_link, get_owners_link

DEFAULT_BASE_URL = "https://gitlab.com/"
DEFAULT_PROXY_PATH = "/gitlabci"
DEFAULT_CODE_OWNERS_PATH = "CODEOWNERS"
DEFAULT_README_PATH = "README.md"
DEFAULT_REF = "HEAD"

QueryType = Mapping[str, str | int | None]

T = TypeVar("T")
TAnnotated = TypeVar("TAnnotated", bound=ProjectNameAnnotated)


def normalize_base_url(base_url: str) -> str:
    return base_url if base_url.endswith("/") else f"{base_url}/"


def encode_file_path(file_path: str) -> str:
    """Encode a repository file path as a single URL path segment."""

    return quote(strip_relative_prefix(file_path), safe="")


@cache
def get_type_adapter(record_type: Any) -> TypeAdapter[Any]:  # pyright: ignore[reportAny]
    return TypeAdapter(record_type)  # pyright: ignore[reportAny]


def annotate_project_name(records: list[TAnnotated], project_name: str | None) -> list[TAnnotated]:
    """Copy each record with its project name set. Without a name the records are returned as they are."""

    if project_name is None:
        return records

    return [record.model_copy(update={"project_name": project_name}) for record in records]


def get_gitlab_ci_client() -> "GitlabCIClient":
    return GitlabCIClient(
        discovery=get_proxy_discovery(),
        base_url=os.getenv("GITLAB_BASE_URL") or DEFAULT_BASE_URL,
        proxy_path=os.getenv("GITLAB_PROXY_PATH"),
        code_owners_path=os.getenv("GITLAB_CODEOWNERS_PATH"),
    )


class GitlabCIClient:
    discovery: ProxyDiscovery
    http_client: httpx.AsyncClient
    logger: Logger

    base_url: str
    proxy_path: str
    code_owners_path: str

    log_requests: bool
    log_responses: bool
    log_on_error: bool

    def __init__(
        self,
        discovery: ProxyDiscovery,
        base_url: str = DEFAULT_BASE_URL,
        proxy_path: str | None = None,
        code_owners_path: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger: Logger | None = None,
        log_requests: bool = True,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        self.discovery = discovery
        self.base_url = normalize_base_url(base_url)
        self.proxy_path = proxy_path or DEFAULT_PROXY_PATH
        self.code_owners_path = code_owners_path or DEFAULT_CODE_OWNERS_PATH
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient()
        self.logger = logger or getLogger(__name__)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.log_on_error = log_on_error

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_value: BaseException | None, traceback: TracebackType | None
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    def _get_loggers(
        self, log_request: bool | None = None, log_response: bool | None = None, log_on_error: bool | None = None
    ) -> tuple[Callable[[str], Any], Callable[[str], Any], Callable[[str], Any]]:
        request_logger = self.logger.info if log_request or self.log_requests else self.logger.debug
        response_logger = self.logger.info if log_response or self.log_responses else self.logger.debug
        error_logger = self.logger.exception if log_on_error or self.log_on_error else self.logger.debug
        return request_logger, response_logger, error_logger

    async def _call_api(
        self,
        action: str,
        path: str,
        query: QueryType | None = None,
        as_text: bool = False,
        log_request: bool | None = None,
        log_response: bool | None = None,
        log_on_error: bool | None = None,
    ) -> Any | None:  # pyright: ignore[reportAny]
        """Perform a GET against the GitLab proxy and decode the body.

        Args:
            action: The action being performed.
            path: The path of the resource, relative to the proxy.
            query: The query parameters, sent in insertion order. Parameters set to None are not sent.
            as_text: Whether to return the body as text instead of decoding it as JSON.

        Returns:
            The decoded body for a 200 response, None for any other status.

        Raises:
            RequestError: If the request could not be performed.
            DecodeError: If a JSON body could not be decoded.
        """

        request_logger, response_logger, error_logger = self._get_loggers(
            log_request=log_request, log_response=log_response, log_on_error=log_on_error
        )

        proxy_base_url: str = await self.discovery.resolve_proxy_base_url()

        url = f"{proxy_base_url}{self.proxy_path}/{path}"
        params = {key: value for key, value in (query or {}).items() if value is not None}

        request_logger(f"Performing {action} against {url} with params {params}")

        try:
            response: httpx.Response = await self.http_client.get(url, params=params)
        except httpx.HTTPError as e:
            error_logger(f"Error performing {action} against {url} with params {params}: {e}")

            raise RequestError(action=action, message=str(e)) from e

        # Not found and server errors alike mean there is no data to show
        if response.status_code != httpx.codes.OK:
            self.logger.debug(f"No data for {action} against {url}: status {response.status_code}")
            return None

        if as_text:
            response_logger(f"Received {len(response.text)} characters for {action} against {url}")
            return response.text

        try:
            body = response.json()  # pyright: ignore[reportAny]
        except ValueError as e:
            raise DecodeError(action=action, message=str(e)) from e

        response_logger(f"Received response for {action} against {url}: {body}")

        return body  # pyright: ignore[reportAny]

    def _validate(self, action: str, data: Any, record_type: type[T]) -> T:  # pyright: ignore[reportAny]
        try:
            return get_type_adapter(record_type).validate_python(data)  # pyright: ignore[reportAny]
        except ValidationError as e:
            raise DecodeError(action=action, message=str(e)) from e

    async def _get_project(self, project_id: ProjectRef) -> ProjectDetails | None:
        if project := await self._call_api(action="Get project", path=f"projects/{project_id}"):
            return self._validate("Get project", project, ProjectDetails)

        return None

    async def get_project_name(self, project_id: ProjectRef) -> str | None:
        """Get the display name of a project."""

        project: ProjectDetails | None = await self._get_project(project_id=project_id)

        return project.name if project else None

    async def _get_annotation_project_name(self, project_id: ProjectRef) -> str | None:
        try:
            return await self.get_project_name(project_id=project_id)
        except ClientError as e:
            self.logger.warning(f"Could not get the name of project {project_id}: {e}")
            return None

    async def get_project_details(self, project_slug: str | None) -> ProjectDetails | None:
        """Get a project by its full path, for example `group/subgroup/project`."""

        if not project_slug:
            return None

        if project := await self._call_api(action="Get project details", path=f"projects/{quote(project_slug, safe='')}"):
            return self._validate("Get project details", project, ProjectDetails)

        return None

    async def get_pipeline_summary(self, project_id: ProjectRef) -> list[PipelineRecord] | None:
        """Get the pipelines of a project, each annotated with the name of the project."""

        pipelines, project_name = await asyncio.gather(
            self._call_api(action="Get pipelines", path=f"projects/{project_id}/pipelines"),
            self._get_annotation_project_name(project_id=project_id),
        )

        if pipelines is None:
            return None

        return annotate_project_name(records=self._validate("Get pipelines", pipelines, list[PipelineRecord]), project_name=project_name)

    async def get_issues_summary(self, project_id: ProjectRef) -> list[IssueRecord] | None:
        """Get the issues of a project, each annotated with the name of the project."""

        issues, project_name = await asyncio.gather(
            self._call_api(action="Get issues", path=f"projects/{project_id}/issues"),
            self._get_annotation_project_name(project_id=project_id),
        )

        if issues is None:
            return None

        return annotate_project_name(records=self._validate("Get issues", issues, list[IssueRecord]), project_name=project_name)

    async def get_merge_requests_summary(self, project_id: ProjectRef) -> list[MergeRequestRecord] | None:
        """Get the merge requests of a project."""

        if (merge_requests := await self._call_api(action="Get merge requests", path=f"projects/{project_id}/merge_requests")) is None:
            return None

        return self._validate("Get merge requests", merge_requests, list[MergeRequestRecord])

    async def get_merge_requests_status_summary(self, project_id: ProjectRef, count: int) -> list[MergeRequestRecord] | None:
        """Get the most recent merge requests of a project.

        Args:
            project_id: The ID or URL-encoded path of the project.
            count: The number of merge requests to get.
        """

        merge_requests = await self._call_api(
            action="Get recent merge requests",
            path=f"projects/{project_id}/merge_requests",
            query={"per_page": count},
        )

        if merge_requests is None:
            return None

        return self._validate("Get recent merge requests", merge_requests, list[MergeRequestRecord])

    async def get_contributors_summary(self, project_id: ProjectRef) -> list[Contributor] | None:
        """Get the contributors of a project, with the avatar of each contributor's GitLab user where one matches."""

        contributors = await self._call_api(
            action="Get contributors",
            path=f"projects/{project_id}/repository/contributors",
            query={"sort": "desc"},
        )

        if contributors is None:
            return None

        return await self._enrich_contributors(contributors=self._validate("Get contributors", contributors, list[Contributor]))

    async def _find_avatar_url(self, contributor: Contributor) -> str | None:
        """The avatar of the first user found by the contributor's email whose name is exactly the contributor's name."""

        user_profiles = await self._call_api(action="Search users", path="users", query={"search": contributor.email})

        if not user_profiles:
            return None

        for user_profile in self._validate("Search users", user_profiles, list[UserProfile]):
            if user_profile.name == contributor.name:
                return user_profile.avatar_url

        return None

    async def _enrich_contributors(self, contributors: list[Contributor]) -> list[Contributor]:
        results: list[str | BaseException | None] = await asyncio.gather(
            *[self._find_avatar_url(contributor=contributor) for contributor in contributors], return_exceptions=True
        )

        enriched_contributors: list[Contributor] = []

        for contributor, result in zip(contributors, results, strict=True):
            if isinstance(result, Exception):
                self.logger.warning(f"Could not find the avatar of contributor {contributor.name}: {result}", exc_info=result)
                enriched_contributors.append(contributor)
                continue

            if isinstance(result, BaseException):
                raise result

            enriched_contributors.append(contributor.model_copy(update={"avatar_url": result}) if result else contributor)

        return enriched_contributors

    async def get_languages_summary(self, project_id: ProjectRef) -> LanguagesSummary | None:
        """Get the languages of a project and the share of the repository written in each."""

        if (languages := await self._call_api(action="Get languages", path=f"projects/{project_id}/languages")) is None:
            return None

        return self._validate("Get languages", languages, LanguagesSummary)

    async def get_releases_summary(self, project_id: ProjectRef) -> list[ReleaseRecord] | None:
        """Get the releases of a project."""

        if (releases := await self._call_api(action="Get releases", path=f"projects/{project_id}/releases")) is None:
            return None

        return self._validate("Get releases", releases, list[ReleaseRecord])

    async def _get_raw_file(self, action: str, project_id: ProjectRef, branch: str, file_path: str) -> str | None:
        return await self._call_api(
            action=action,
            path=f"projects/{project_id}/repository/files/{encode_file_path(file_path)}/raw",
            query={"ref": branch},
            as_text=True,
        )

    async def get_readme(self, project_id: ProjectRef, branch: str = DEFAULT_REF, file_path: str = DEFAULT_README_PATH) -> str | None:
        """Get the raw content of the README of a project."""

        return await self._get_raw_file(action="Get README", project_id=project_id, branch=branch, file_path=file_path)

    async def get_code_owners(self, project_id: ProjectRef, branch: str = DEFAULT_REF, file_path: str | None = None) -> list[OwnerEntry]:
        """Get the rules of the CODEOWNERS file of a project. A missing file has no rules.

        Args:
            project_id: The ID or URL-encoded path of the project.
            branch: The branch, tag or commit to read the file from.
            file_path: The path of the CODEOWNERS file. Defaults to the configured path.
        """

        code_owners_text: str | None = await self._get_raw_file(
            action="Get code owners",
            project_id=project_id,
            branch=branch,
            file_path=file_path or self.code_owners_path,
        )

        return parse_code_owners(code_owners_text or "")

    async def get_code_owner_people(
        self, project_id: ProjectRef, branch: str = DEFAULT_REF, file_path: str | None = None
    ) -> list[OwnerPerson]:
        """Get the owners named in the CODEOWNERS file of a project, resolved to GitLab users where possible."""

        code_owners: list[OwnerEntry] = await self.get_code_owners(project_id=project_id, branch=branch, file_path=file_path)

        patterns_by_owner: dict[str, list[str]] = group_patterns_by_owner(code_owners)

        results: list[OwnerPerson | BaseException] = await asyncio.gather(
            *[self._resolve_owner(owner=owner, patterns=patterns) for owner, patterns in patterns_by_owner.items()], return_exceptions=True
        )

        owner_people: list[OwnerPerson] = []

        for (owner, patterns), result in zip(patterns_by_owner.items(), results, strict=True):
            if isinstance(result, Exception):
                self.logger.warning(f"Could not resolve code owner {owner}: {result}", exc_info=result)
                owner_people.append(OwnerPerson.from_owner(owner=owner, patterns=patterns))
                continue

            if isinstance(result, BaseException):
                raise result

            owner_people.append(result)

        return owner_people

    async def _resolve_owner(self, owner: str, patterns: list[str]) -> OwnerPerson:
        if owner.startswith("@"):
            try:
                user_profile: UserProfile = await self.get_user_detail(handle=owner)
            except ResourceNotFoundError:
                return OwnerPerson.from_handle(owner=owner, patterns=patterns)

            return OwnerPerson.from_user_profile(owner=owner, user_profile=user_profile, patterns=patterns)

        if user_profiles := await self._call_api(action="Search users", path="users", query={"search": owner}):
            for user_profile in self._validate("Search users", user_profiles, list[UserProfile]):
                if user_profile.has_email(owner):
                    return OwnerPerson.from_user_profile(owner=owner, user_profile=user_profile, patterns=patterns, email=owner)

        return OwnerPerson.from_email(owner=owner, patterns=patterns)

    async def get_user_detail(self, handle: str) -> UserProfile:
        """Get a user by username. A single leading `@` is ignored.

        Raises:
            ResourceNotFoundError: If no user has the username.
        """

        username = handle.removeprefix("@")

        user_profiles = await self._call_api(action="Get user", path="users", query={"username": username})

        if not user_profiles:
            raise ResourceNotFoundError(action="Get user", resource=username)

        return self._validate("Get user", user_profiles, list[UserProfile])[0]

    def get_contributors_link(self, project_web_url: str | None, project_default_branch: str | None) -> str:
        return get_contributors_link(project_web_url=project_web_url, project_default_branch=project_default_branch)

    def get_owners_link(
        self, project_web_url: str | None, project_default_branch: str | None, code_owners_path: str | None = None
    ) -> str:
        return get_owners_link(
            project_web_url=project_web_url,
            project_default_branch=project_default_branch,
            code_owners_path=code_owners_path or self.code_owners_path,
        )
