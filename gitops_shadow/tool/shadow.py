"""Command line tool for publishing rendered manifests to a shadow repository."""

import argparse
import asyncio
import logging
import sys
import traceback

from gitops_shadow.exceptions import ShadowException
from . import cleanup, discover, helm, redact, sync

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render GitOps manifests and publish them to a shadow repository for review.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    sync.SyncAction.register(subparsers)
    discover.DiscoverAction.register(subparsers)
    helm.HelmAction.register(subparsers)
    redact.RedactAction.register(subparsers)
    cleanup.CleanupAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Gitops-shadow command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except ShadowException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("gitops-shadow error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
