"""Gitops-shadow redact action."""

import logging
import pathlib
import sys
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from gitops_shadow.exceptions import InputException
from gitops_shadow.redact import redact_secrets

_LOGGER = logging.getLogger(__name__)


class RedactAction:
    """Gitops-shadow redact action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "redact",
                help="Redact Secret data in a manifest stream",
                description=(
                    "Read a multi-document yaml stream from a file or stdin and "
                    "print it with Secret data replaced by a placeholder."
                ),
            ),
        )
        args.add_argument(
            "path",
            help="Manifest file to redact (default stdin)",
            type=pathlib.Path,
            default=None,
            nargs="?",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        if path is None:
            content = sys.stdin.read()
        else:
            try:
                content = path.read_text()
            except OSError as err:
                raise InputException(f"Unable to read {path}: {err}") from err
        print(redact_secrets(content), end="")
