from typing import Annotated

from fastmcp.tools.tool_transform import ArgTransform
from pydantic import Field

PROJECT_ID_DESCRIPTION = "The numeric ID or the URL-encoded path of the GitLab project, for example `42` or `group%2Fproject`."
PROJECT_ID = Annotated[str | int, Field(description=PROJECT_ID_DESCRIPTION)]
PROJECT_ID_ARG_TRANSFORM = ArgTransform(description=PROJECT_ID_DESCRIPTION)

BRANCH_DESCRIPTION = "The branch, tag or commit to read from. Defaults to the default branch of the project."
BRANCH = Annotated[str, Field(description=BRANCH_DESCRIPTION)]
BRANCH_ARG_TRANSFORM = ArgTransform(description=BRANCH_DESCRIPTION)

FILE_PATH_DESCRIPTION = "The path of the file in the repository."
FILE_PATH_ARG_TRANSFORM = ArgTransform(description=FILE_PATH_DESCRIPTION)

PROJECT_WEB_URL_DESCRIPTION = "The web URL of the project, for example `https://gitlab.com/group/project`."
PROJECT_WEB_URL_ARG_TRANSFORM = ArgTransform(description=PROJECT_WEB_URL_DESCRIPTION)

PROJECT_DEFAULT_BRANCH_DESCRIPTION = "The default branch of the project."
PROJECT_DEFAULT_BRANCH_ARG_TRANSFORM = ArgTransform(description=PROJECT_DEFAULT_BRANCH_DESCRIPTION)
