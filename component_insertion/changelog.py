"""Changelog compilation for insertion pull request descriptions.

Commits between the previously inserted build and the new one are rendered
newest first as Markdown bullets:

- Merge commits ("Merge pull request #N from ...") and squash commits
  ("Title (#N)") link to the pull request and go under "Merged PRs".
- Other commits link to the commit and go under "Commits since last PR",
  but only until the first pull request is seen; past that point the pull
  requests already cover the history.

The description is kept within a hard length limit; when the next line would
not fit, a truncation notice is appended instead.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from component_insertion.types import ChangeKind, GitCommit

if TYPE_CHECKING:
    from component_insertion.config import Settings

logger = logging.getLogger(__name__)

# Azure DevOps limits pull request descriptions to 4000 characters
DEFAULT_HARD_LIMIT = 4000

LINE_BREAK = "\n"
TRUNCATION_MESSAGE = "Changelog truncated due to description length limit."
COMMITS_HEADER = "### Commits since last PR:"
MERGED_PRS_HEADER = "### Merged PRs:"

SHORT_SHA_LENGTH = 7

MERGE_PR_PATTERN = re.compile(r"^Merge pull request #(\d+) from")
SQUASH_PR_PATTERN = re.compile(r"\(#(\d+)\)(?:\n|$)")


@dataclass(frozen=True)
class ChangelogPolicy:
    """Commit-authorship conventions of the hosting platform.

    Attributes:
        platform_committer: Committer name on merge and squash commits.
        dependency_bot_author: Author of automated dependency updates.
        release_flow_pattern: Regex matching automated release-flow merges.
        hard_limit: Maximum description length.
    """

    platform_committer: str = "GitHub"
    dependency_bot_author: str = "dotnet-maestro[bot]"
    release_flow_pattern: str = r"^Merge pull request #\d+ from dotnet/merges/"
    hard_limit: int = DEFAULT_HARD_LIMIT

    @classmethod
    def from_settings(cls, settings: Settings) -> ChangelogPolicy:
        return cls(
            platform_committer=settings.platform_committer,
            dependency_bot_author=settings.dependency_bot_author,
            release_flow_pattern=settings.release_flow_pattern,
            hard_limit=settings.changelog_hard_limit,
        )

    def is_release_flow(self, message: str) -> bool:
        return re.match(self.release_flow_pattern, message) is not None


@dataclass(frozen=True)
class ChangelogLine:
    """A rendered changelog bullet."""

    kind: ChangeKind
    summary: str
    link: str

    @property
    def is_pull_request(self) -> bool:
        return self.kind in (ChangeKind.MERGE_PR, ChangeKind.SQUASH_PR)

    def render(self) -> str:
        return f"- [{self.summary}]({self.link})"


def github_pull_request_url(repo_url: str, pr_number: str) -> str:
    """Return the pull request URL under a repository URL."""
    return f"{repo_url}/pull/{pr_number}"


def classify_commit(commit: GitCommit, repo_url: str) -> ChangelogLine:
    """Classify a commit and build its changelog line."""
    message = commit.message
    lines = message.split("\n")

    match = MERGE_PR_PATTERN.match(message)
    if match:
        pr_number = match.group(1)
        # "Merge pull request #N from user/branch\n\n<title>": the title is the useful part
        summary = f"{lines[2]} ({pr_number})" if len(lines) > 2 else lines[0]
        kind = ChangeKind.MERGE_PR
    else:
        match = SQUASH_PR_PATTERN.search(message)
        if match is None:
            short_sha = commit.commit_id[:SHORT_SHA_LENGTH]
            return ChangelogLine(
                kind=ChangeKind.COMMIT,
                summary=f"{lines[0]} ({short_sha})",
                link=f"{repo_url}/commit/{commit.commit_id}",
            )
        pr_number = match.group(1)
        summary = lines[0]
        kind = ChangeKind.SQUASH_PR

    # Keep the hosting UI from linkifying the number a second time
    summary = summary.replace(f"#{pr_number}", pr_number)
    return ChangelogLine(
        kind=kind,
        summary=summary,
        link=github_pull_request_url(repo_url, pr_number),
    )


def append_changes_to_description(
    description: str,
    repo_id: str,
    changes: Sequence[GitCommit],
    policy: ChangelogPolicy | None = None,
) -> str:
    """Append a changelog of ``changes`` to a pull request description.

    Args:
        description: Existing description.
        repo_id: GitHub repository in 'owner/name' form.
        changes: Commits between the two builds, newest first.
        policy: Authorship conventions and length limit.

    Returns:
        The description with the changelog appended. An over-limit result is
        logged as a warning and still returned.
    """
    if not changes:
        return description

    if policy is None:
        policy = ChangelogPolicy()

    repo_url = f"//github.com/{repo_id}"
    parts = [description, LINE_BREAK]
    length = len(description) + len(LINE_BREAK)

    def append_line(text: str) -> None:
        nonlocal length
        parts.append(text + LINE_BREAK)
        length += len(text) + len(LINE_BREAK)

    commit_header_added = False
    merged_header_added = False
    merge_pr_found = False

    for commit in changes:
        # Past the first pull request only platform-committed merges and squashes matter
        if commit.committer != policy.platform_committer and merge_pr_found:
            continue

        if commit.author == policy.dependency_bot_author:
            merge_pr_found = True
            continue

        if policy.is_release_flow(commit.message):
            merge_pr_found = True
            continue

        line = classify_commit(commit, repo_url)

        if not line.is_pull_request and merge_pr_found:
            continue

        pending = []
        if line.is_pull_request:
            merge_pr_found = True
            if not merged_header_added:
                pending.append(MERGED_PRS_HEADER)
        elif not commit_header_added:
            pending.append(COMMITS_HEADER)
        pending.append(line.render())

        # Leave room for these lines and for the truncation notice
        limit = (
            policy.hard_limit
            - sum(len(text) + len(LINE_BREAK) for text in pending)
            - (len(TRUNCATION_MESSAGE) + len(LINE_BREAK))
        )
        if length > limit:
            append_line(TRUNCATION_MESSAGE)
            break

        if line.is_pull_request:
            merged_header_added = True
        else:
            commit_header_added = True
        for text in pending:
            append_line(text)

    result = "".join(parts)
    if len(result) > policy.hard_limit:
        logger.warning(
            "PR description is %d characters long, but the limit is %d.",
            len(result),
            policy.hard_limit,
        )
        logger.warning(result)
    return result


__all__ = [
    "COMMITS_HEADER",
    "ChangelogLine",
    "ChangelogPolicy",
    "DEFAULT_HARD_LIMIT",
    "MERGED_PRS_HEADER",
    "TRUNCATION_MESSAGE",
    "append_changes_to_description",
    "classify_commit",
    "github_pull_request_url",
]
