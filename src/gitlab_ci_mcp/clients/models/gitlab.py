from datetime import datetime
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

ProjectRef = str | int


class PassthroughRecord(BaseModel):
    """A record returned by the GitLab API. Fields not declared here are kept as-is."""

    model_config = ConfigDict(extra="allow")


class ProjectNameAnnotated(PassthroughRecord):
    project_name: str | None = Field(default=None, description="The display name of the project the record belongs to.")


class PipelineRecord(ProjectNameAnnotated):
    """A pipeline."""

    id: int = Field(description="The ID of the pipeline.")
    iid: int | None = Field(default=None, description="The project-scoped ID of the pipeline.")
    project_id: int | None = Field(default=None, description="The ID of the project the pipeline belongs to.")
    status: str | None = Field(default=None, description="The status of the pipeline.")
    ref: str | None = Field(default=None, description="The ref the pipeline ran on.")
    sha: str | None = Field(default=None, description="The commit SHA the pipeline ran on.")
    web_url: str | None = Field(default=None, description="The web URL of the pipeline.")
    created_at: datetime | None = Field(default=None, description="When the pipeline was created.")
    updated_at: datetime | None = Field(default=None, description="When the pipeline was last updated.")


class IssueRecord(ProjectNameAnnotated):
    """An issue."""

    id: int = Field(description="The ID of the issue.")
    iid: int | None = Field(default=None, description="The project-scoped ID of the issue.")
    project_id: int | None = Field(default=None, description="The ID of the project the issue belongs to.")
    title: str | None = Field(default=None, description="The title of the issue.")
    state: str | None = Field(default=None, description="The state of the issue.")
    web_url: str | None = Field(default=None, description="The web URL of the issue.")
    created_at: datetime | None = Field(default=None, description="When the issue was created.")


class MergeRequestRecord(PassthroughRecord):
    """A merge request."""

    id: int = Field(description="The ID of the merge request.")
    iid: int | None = Field(default=None, description="The project-scoped ID of the merge request.")
    project_id: int | None = Field(default=None, description="The ID of the project the merge request belongs to.")
    title: str | None = Field(default=None, description="The title of the merge request.")
    state: str | None = Field(default=None, description="The state of the merge request.")
    web_url: str | None = Field(default=None, description="The web URL of the merge request.")
    created_at: datetime | None = Field(default=None, description="When the merge request was created.")
    merged_at: datetime | None = Field(default=None, description="When the merge request was merged.")


class ReleaseRecord(PassthroughRecord):
    """A release."""

    tag_name: str = Field(description="The tag the release was cut from.")
    name: str | None = Field(default=None, description="The name of the release.")
    description: str | None = Field(default=None, description="The release notes.")
    released_at: datetime | None = Field(default=None, description="When the release was published.")


class ProjectDetails(PassthroughRecord):
    """A project."""

    id: int = Field(description="The ID of the project.")
    name: str = Field(description="The display name of the project.")
    path_with_namespace: str | None = Field(default=None, description="The full path of the project.")
    web_url: str | None = Field(default=None, description="The web URL of the project.")
    default_branch: str | None = Field(default=None, description="The default branch of the project.")
    readme_url: str | None = Field(default=None, description="The web URL of the project's README.")


class Contributor(PassthroughRecord):
    """A repository contributor."""

    name: str = Field(description="The name the contributor commits with.")
    email: str = Field(description="The email the contributor commits with.")
    commits: int = Field(default=0, description="The number of commits by the contributor.")
    additions: int = Field(default=0, description="The number of lines added by the contributor.")
    deletions: int = Field(default=0, description="The number of lines deleted by the contributor.")
    avatar_url: str | None = Field(default=None, description="The avatar of the matching GitLab user, if one was found.")


class UserProfile(PassthroughRecord):
    """A GitLab user."""

    id: int | None = Field(default=None, description="The ID of the user.")
    name: str = Field(description="The display name of the user.")
    username: str = Field(description="The username of the user.")
    state: str | None = Field(default=None, description="The state of the user account.")
    avatar_url: str | None = Field(default=None, description="The avatar of the user.")
    web_url: str | None = Field(default=None, description="The profile URL of the user.")
    public_email: str | None = Field(default=None, description="The public email of the user.")
    email: str | None = Field(default=None, description="The primary email of the user, only visible to administrators.")

    def has_email(self, email: str) -> bool:
        """Whether the public or primary email of the user is `email`, ignoring case."""
        return email.casefold() in {known_email.casefold() for known_email in (self.public_email, self.email) if known_email}


LanguagesSummary = dict[str, float]


class OwnerEntry(BaseModel):
    """One rule from a CODEOWNERS file."""

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(description="The file pattern the rule applies to.")
    owners: list[str] = Field(default_factory=list, description="The owners of the pattern, as `@username` handles or emails.")


class OwnerPerson(BaseModel):
    """A code owner ready for display."""

    owner: str = Field(description="The owner as written in the CODEOWNERS file.")
    name: str = Field(description="The display name of the owner.")
    username: str | None = Field(default=None, description="The username of the owner.")
    email: str | None = Field(default=None, description="The email of the owner.")
    avatar_url: str | None = Field(default=None, description="The avatar of the owner.")
    web_url: str | None = Field(default=None, description="The profile URL of the owner.")
    patterns: list[str] = Field(default_factory=list, description="The patterns the owner owns, in file order.")

    @classmethod
    def from_user_profile(cls, owner: str, user_profile: UserProfile, patterns: list[str], email: str | None = None) -> Self:
        return cls(
            owner=owner,
            name=user_profile.name,
            username=user_profile.username,
            email=email,
            avatar_url=user_profile.avatar_url,
            web_url=user_profile.web_url,
            patterns=patterns,
        )

    @classmethod
    def from_handle(cls, owner: str, patterns: list[str]) -> Self:
        username = owner.removeprefix("@")
        return cls(owner=owner, name=username, username=username, patterns=patterns)

    @classmethod
    def from_email(cls, owner: str, patterns: list[str]) -> Self:
        return cls(owner=owner, name=owner, email=owner, patterns=patterns)

    @classmethod
    def from_owner(cls, owner: str, patterns: list[str]) -> Self:
        """An owner that could not be resolved to a user, as written in the CODEOWNERS file."""
        return cls.from_handle(owner=owner, patterns=patterns) if owner.startswith("@") else cls.from_email(owner=owner, patterns=patterns)
