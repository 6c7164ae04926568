"""Gitops-shadow helm actions for inspecting ArgoCD Helm sources."""

import logging
import pathlib
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import Any, cast

from gitops_shadow import argocd, helm
from gitops_shadow.exceptions import HelmException, ValuesFileNotFound

from .format import JsonFormatter, PrintFormatter

_LOGGER = logging.getLogger(__name__)


def _add_repo_flag(args: ArgumentParser) -> None:
    args.add_argument(
        "--repo",
        type=pathlib.Path,
        default=pathlib.Path("."),
        help="Path to the local source repository checkout",
    )


def _value_files_status(source: argocd.Source, repo: pathlib.Path) -> str:
    value_files = source.helm.value_files if source.helm else []
    if not value_files:
        return "-"
    try:
        argocd.resolve_value_files(value_files, repo)
    except ValuesFileNotFound as err:
        return f"missing {err.path}"
    return f"{len(value_files)} ok"


class HelmListAction:
    """List ArgoCD Applications with Helm sources."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "list",
                aliases=["ls"],
                help="List Applications with Helm sources",
                description="Print the Helm sources of ArgoCD Applications",
            ),
        )
        _add_repo_flag(args)
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
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        results: list[dict[str, Any]] = []
        for app in argocd.discover_helm_applications(repo):
            for index, source in enumerate(app.helm_sources()):
                results.append(
                    {
                        "name": app.name,
                        "path": helm.helm_target(app, index).path,
                        "chart": source.chart,
                        "version": source.target_revision or "-",
                        "repo": source.repo_url,
                        "oci": source.is_oci,
                        "values": _value_files_status(source, repo),
                    }
                )
        if output == "json":
            JsonFormatter().print(results)
            return
        if not results:
            print(f"No Applications with Helm sources found in {repo}")
            return
        PrintFormatter(["name", "chart", "version", "oci", "values"]).print(results)


class HelmTestAction:
    """Render the Helm sources of ArgoCD Applications."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "test",
                help="Render Helm sources to verify they template",
                description=(
                    "Run helm template for the Helm sources of ArgoCD Applications "
                    "and report failures."
                ),
            ),
        )
        args.add_argument(
            "app",
            help="Only render the Application with this name",
            default=None,
            nargs="?",
        )
        _add_repo_flag(args)
        args.add_argument(
            "--retries",
            type=int,
            default=0,
            help="Number of retries for transient helm failures",
        )
        args.add_argument(
            "--retry-delay",
            type=float,
            default=2.0,
            help="Seconds to wait between retries",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        app: str | None,
        repo: pathlib.Path,
        retries: int,
        retry_delay: float,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        apps = argocd.discover_helm_applications(repo)
        if app:
            apps = [item for item in apps if item.name == app]
        if not apps:
            print("No matching Applications with Helm sources")
            return

        failed = 0
        for application in apps:
            for index, source in enumerate(application.helm_sources()):
                result = await helm.render_source(
                    application,
                    source,
                    repo,
                    index=index,
                    retries=retries,
                    delay=retry_delay,
                )
                if result.passed:
                    print(f"OK {result.target.path}")
                    continue
                failed += 1
                error = (result.error or "").split("\n")[0]
                print(f"FAIL {result.target.path}: {error}")
        if failed:
            raise HelmException(f"{failed} Helm source(s) failed to render")


class HelmAction:
    """Gitops-shadow helm action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "helm",
                help="Inspect Helm sources of ArgoCD Applications",
                description="Inspect and render Helm sources of ArgoCD Applications",
            ),
        )
        subcmds = args.add_subparsers(
            title="Available commands",
            required=True,
        )
        HelmListAction.register(subcmds)
        HelmTestAction.register(subcmds)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        # No-op given subcommands are always the dispatch target
