"""Library for removing shadow branches of pull requests that are no longer open.

Each run for a pull request pushes a `pr-<number>` branch to the shadow
repository. Once the pull request in the source repository is closed or
merged the branch is stale and is deleted.
"""

import logging
import re

from .exceptions import GitException, GitHubException
from .git_repo import ShadowRepo
from .github import GitHubClient, PRState
from .manifest import CleanupResult

__all__ = [
    "cleanup_stale_branches",
]

_LOGGER = logging.getLogger(__name__)

_PR_BRANCH_RE = re.compile(r"^pr-(\d+)$")


async def cleanup_stale_branches(
    repo: ShadowRepo,
    source_repo: str,
    client: GitHubClient,
    dry_run: bool = False,
) -> CleanupResult:
    """Delete pr-* branches whose pull request in `source_repo` is not open.

    Failures to look up or delete a branch are recorded on the result and
    do not stop the remaining branches from being processed. Raises
    `GitException` if the remote branches cannot be listed.
    """
    result = CleanupResult()
    branches = repo.list_remote_pr_branches()
    _LOGGER.info("Found %d pr-* branches to check", len(branches))

    for branch in branches:
        result.checked_branches.append(branch)
        if not (match := _PR_BRANCH_RE.match(branch)):
            continue
        pr_number = match.group(1)

        try:
            state = await client.pr_state(source_repo, pr_number)
        except GitHubException as err:
            result.errors.append(f"failed to check PR #{pr_number}: {err}")
            _LOGGER.info("%s: error - %s", branch, err)
            continue

        if state == PRState.OPEN:
            result.skipped_branches.append(branch)
            _LOGGER.info("%s: PR still open, skipping", branch)
            continue

        if dry_run:
            _LOGGER.info("%s: PR %s, would delete (dry-run)", branch, state.value)
        else:
            _LOGGER.info("%s: PR %s, deleting", branch, state.value)
            try:
                repo.delete_remote_branch(branch)
            except GitException as err:
                result.errors.append(f"failed to delete {branch}: {err}")
                continue
        result.deleted_branches.append(branch)

    return result
