"""Parsing for GitLab CODEOWNERS files."""

import re

from gitlab_ci_mcp.clients.models.gitlab import OwnerEntry

SECTION_HEADER_PATTERN = re.compile(r"^\^?\[[^\]]+\](\[\d+\])?(\s|$)")

INLINE_COMMENT_PATTERN = re.compile(r"\s+#.*$")


def strip_relative_prefix(path: str) -> str:
    """Remove a single leading `./` from a repository path."""

    return path[2:] if path.startswith("./") else path


def parse_code_owners_line(line: str) -> OwnerEntry | None:
    line = line.strip()

    if not line or line.startswith("#"):
        return None

    if SECTION_HEADER_PATTERN.match(line):
        return None

    line = INLINE_COMMENT_PATTERN.sub("", line)

    # `\#` at the start of a pattern is a literal hash
    if line.startswith("\\#"):
        line = line[1:]

    pattern, *owners = line.split()

    return OwnerEntry(pattern=pattern, owners=owners)


def parse_code_owners(text: str) -> list[OwnerEntry]:
    """Parse the text of a CODEOWNERS file into its rules, in file order.

    Blank lines, comments and section headers are skipped. Default owners listed on a section
    header are not attached to the rules below it."""

    entries: list[OwnerEntry] = []

    for line in text.splitlines():
        if entry := parse_code_owners_line(line):
            entries.append(entry)

    return entries


def group_patterns_by_owner(entries: list[OwnerEntry]) -> dict[str, list[str]]:
    """Map each distinct owner to the patterns it owns, keeping first-appearance order."""

    patterns_by_owner: dict[str, list[str]] = {}

    for entry in entries:
        for owner in entry.owners:
            patterns_by_owner.setdefault(owner, []).append(entry.pattern)

    return patterns_by_owner
