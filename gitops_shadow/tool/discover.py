"""Gitops-shadow discover action."""

import logging
import pathlib
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import Any, cast

from gitops_shadow.discover import discover_targets

from .format import JsonFormatter, PrintFormatter
from .sync import add_cluster_flags

_LOGGER = logging.getLogger(__name__)


class DiscoverAction:
    """Gitops-shadow discover action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "discover",
                help="Print the kustomization directories that would be rendered",
                description="Print the deployment relevant kustomization directories",
            ),
        )
        args.add_argument(
            "--repo",
            type=pathlib.Path,
            default=pathlib.Path("."),
            help="Path to the local source repository checkout",
        )
        add_cluster_flags(args)
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
        targets = discover_targets(repo, kwargs.get("clusters"))
        results: list[dict[str, Any]] = [
            {"path": target.path, "cluster": target.cluster or "-"}
            for target in targets
        ]
        if output == "json":
            JsonFormatter().print(results)
            return
        if not results:
            print(f"No kustomization directories found in {repo}")
            return
        PrintFormatter(["path", "cluster"]).print(results)
