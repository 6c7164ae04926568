"""Gitops-shadow cleanup action."""

import logging
import pathlib
import tempfile
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from gitops_shadow.cleanup import cleanup_stale_branches
from gitops_shadow.exceptions import InputException
from gitops_shadow.git_repo import ShadowRepo
from gitops_shadow.github import GitHubClient

from .format import JsonFormatter
from .sync import source_repo_from_env

_LOGGER = logging.getLogger(__name__)


class CleanupAction:
    """Gitops-shadow cleanup action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "cleanup",
                help="Delete shadow branches of closed or merged pull requests",
                description=(
                    "Check the pull request of every pr-<number> branch in the "
                    "shadow repository and delete branches that are no longer open."
                ),
            ),
        )
        args.add_argument(
            "--shadow-repo",
            required=True,
            help="Shadow repository slug (owner/repo) or git url",
        )
        args.add_argument(
            "--source-repo",
            default=None,
            help="Source repository slug used to look up pull requests",
        )
        args.add_argument(
            "--dry-run",
            default=False,
            action=BooleanOptionalAction,
            help="Report the branches that would be deleted without deleting",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["text", "json"],
            default="text",
            help="Output format of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        shadow_repo: str,
        source_repo: str | None,
        dry_run: bool,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        if not source_repo:
            source_repo = source_repo_from_env()
        if not source_repo:
            raise InputException(
                "Flag --source-repo is required to look up pull requests"
            )

        with tempfile.TemporaryDirectory(prefix="shadow-cleanup-") as temp_dir:
            repo = ShadowRepo.clone(shadow_repo, pathlib.Path(temp_dir) / "shadow")
            async with GitHubClient() as client:
                result = await cleanup_stale_branches(
                    repo, source_repo, client, dry_run=dry_run
                )

        if output == "json":
            JsonFormatter().print(result.to_dict())
            return
        print(f"Checked {len(result.checked_branches)} branches")
        verb = "Would delete" if dry_run else "Deleted"
        for branch in result.deleted_branches:
            print(f"{verb} {branch}")
        for branch in result.skipped_branches:
            print(f"Skipped {branch} (open)")
        for error in result.errors:
            print(f"Error: {error}")
