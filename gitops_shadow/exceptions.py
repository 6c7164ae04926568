"""Exceptions related to gitops-shadow."""

__all__ = [
    "ShadowException",
    "InputException",
    "CommandException",
    "KustomizeException",
    "HelmException",
    "ValuesFileNotFound",
    "GitException",
    "GitHubException",
]


class ShadowException(Exception):
    """Generic base exception used for this library."""


class InputException(ShadowException):
    """Raised when the input files or options are not formatted as expected."""


class CommandException(ShadowException):
    """Raised when there is a failure running a subcommand."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class KustomizeException(CommandException):
    """Raised when there is a failure running a kustomize command."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class ValuesFileNotFound(InputException):
    """Raised when a `$values/` reference does not point at a file in the repo."""

    def __init__(self, reference: str, path: str) -> None:
        super().__init__(f"value file not found: {path} (resolved from {reference})")
        self.reference = reference
        self.path = path


class GitException(ShadowException):
    """Raised when a git operation against the shadow repository fails."""


class GitHubException(ShadowException):
    """Raised when the GitHub API returns an unexpected response."""
