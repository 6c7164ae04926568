"""Gitops-shadow sync action."""

import logging
import os
import pathlib
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from gitops_shadow import git_repo, syncer
from gitops_shadow.exceptions import InputException
from gitops_shadow.manifest import SyncResult

from .format import JsonFormatter

_LOGGER = logging.getLogger(__name__)

# Environment variables set by CI systems such as Jenkins
PR_ENV = "CHANGE_ID"
COMMIT_ENV = "GIT_COMMIT"
SOURCE_URL_ENV = "GIT_URL"


def source_repo_from_env() -> str:
    """Return the source repository slug from the CI environment, if known."""
    if not (url := os.environ.get(SOURCE_URL_ENV)):
        return ""
    try:
        return git_repo.parse_repo_slug(url)
    except InputException:
        _LOGGER.warning("Ignoring unrecognized %s value: %s", SOURCE_URL_ENV, url)
        return ""


def add_cluster_flags(args: ArgumentParser) -> None:
    """Add the cluster filter flag."""
    args.add_argument(
        "--cluster",
        dest="clusters",
        action="append",
        default=None,
        help="Only render targets for this cluster (repeatable, default all)",
    )


def print_text(result: SyncResult) -> None:
    """Print a human readable summary of a sync run."""
    print(f"Shadow repo: {result.shadow_repo}")
    print(f"Branch: {result.branch} (base: {result.base_branch})")
    print(
        f"Directories: {result.rendered_dirs} rendered, "
        f"{result.skipped_dirs} skipped, {result.failed_dirs} failed"
    )
    print(
        f"Helm apps: {result.helm_apps_rendered} rendered, "
        f"{result.helm_apps_failed} failed"
    )
    print(f"Commit: {result.commit_sha or 'no changes'}")
    if result.compare_url:
        print(f"Compare: {result.compare_url}")
    for failure in result.failures:
        error = failure.error.split("\n")[0]
        print(f"FAILED {failure.directory}: {error}")
    if result.cleanup and result.cleanup.deleted_branches:
        print(f"Deleted branches: {', '.join(result.cleanup.deleted_branches)}")


class SyncAction:
    """Gitops-shadow sync action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "sync",
                help="Render manifests and push them to the shadow repository",
                description=(
                    "Render every kustomization and Helm source in the repository, "
                    "redact Secrets and push the result to a shadow repository branch."
                ),
            ),
        )
        args.add_argument(
            "--repo",
            type=pathlib.Path,
            default=pathlib.Path("."),
            help="Path to the local source repository checkout",
        )
        args.add_argument(
            "--shadow-repo",
            required=True,
            help="Shadow repository slug (owner/repo) or git url",
        )
        args.add_argument(
            "--base-branch",
            default=syncer.DEFAULT_BASE_BRANCH,
            help="Base branch of the shadow repository",
        )
        args.add_argument(
            "--branch",
            default="",
            help="Target branch (default pr-<number> or local-<timestamp>)",
        )
        args.add_argument(
            "--output-root",
            default=syncer.DEFAULT_OUTPUT_ROOT,
            help="Directory in the shadow repository for rendered output",
        )
        add_cluster_flags(args)
        args.add_argument(
            "--force",
            default=True,
            action=BooleanOptionalAction,
            help="Force push the target branch",
        )
        args.add_argument(
            "--redact-secrets",
            default=True,
            action=BooleanOptionalAction,
            help="Replace Secret data with a placeholder",
        )
        args.add_argument(
            "--helm",
            default=True,
            action=BooleanOptionalAction,
            help="Render Helm sources of ArgoCD Applications",
        )
        args.add_argument(
            "--helm-retries",
            type=int,
            default=0,
            help="Number of retries for transient helm failures",
        )
        args.add_argument(
            "--cleanup-merged",
            default=False,
            action=BooleanOptionalAction,
            help="Delete shadow branches of closed or merged pull requests",
        )
        args.add_argument(
            "--pr",
            default=None,
            help=f"Pull request number (default ${PR_ENV})",
        )
        args.add_argument(
            "--source-commit",
            default=None,
            help=f"Source repository commit sha (default ${COMMIT_ENV})",
        )
        args.add_argument(
            "--source-repo",
            default=None,
            help=f"Source repository slug (default derived from ${SOURCE_URL_ENV})",
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
        repo: pathlib.Path,
        shadow_repo: str,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        pr_number = kwargs.get("pr")
        if pr_number is None:
            pr_number = os.environ.get(PR_ENV, "")
        source_commit = kwargs.get("source_commit")
        if source_commit is None:
            source_commit = os.environ.get(COMMIT_ENV, "")
        source_repo = kwargs.get("source_repo")
        if source_repo is None:
            source_repo = source_repo_from_env()

        options = syncer.Options(
            repo_path=repo,
            shadow_repo=shadow_repo,
            clusters=kwargs.get("clusters") or [],
            base_branch=kwargs.get("base_branch") or syncer.DEFAULT_BASE_BRANCH,
            branch=kwargs.get("branch") or "",
            output_root=kwargs.get("output_root") or syncer.DEFAULT_OUTPUT_ROOT,
            force_push=kwargs.get("force", True),
            redact_secrets=kwargs.get("redact_secrets", True),
            cleanup_merged=kwargs.get("cleanup_merged", False),
            source_commit=source_commit,
            source_repo=source_repo,
            pr_number=pr_number,
            enable_helm=kwargs.get("helm", True),
            helm_retries=kwargs.get("helm_retries") or 0,
        )
        result = await syncer.Syncer(options).run()

        if output == "json":
            JsonFormatter().print(result.compact_dict())
            return
        print_text(result)
