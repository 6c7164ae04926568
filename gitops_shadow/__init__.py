"""
.. include:: ../README.md
"""

__all__ = [
    "paths",
    "discover",
    "argocd",
    "kustomize",
    "helm",
    "redact",
    "git_repo",
    "github",
    "cleanup",
    "syncer",
    "manifest",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
