from gitlab_ci_mcp.codeowners import strip_relative_prefix

DEFAULT_REF = "HEAD"


def get_contributors_link(project_web_url: str | None, project_default_branch: str | None) -> str:
    """Link to the contributors graph of a project, or an empty string when the project has no web URL."""

    if not project_web_url:
        return ""

    return f"{project_web_url.rstrip('/')}/-/graphs/{project_default_branch or DEFAULT_REF}"


def get_owners_link(project_web_url: str | None, project_default_branch: str | None, code_owners_path: str | None) -> str:
    """Link to the CODEOWNERS file of a project, or an empty string when the project has no web URL."""

    if not project_web_url:
        return ""

    web_url = project_web_url.rstrip("/")
    ref = project_default_branch or DEFAULT_REF

    if not code_owners_path:
        return f"{web_url}/-/tree/{ref}"

    return f"{web_url}/-/blob/{ref}/{strip_relative_prefix(code_owners_path)}"
