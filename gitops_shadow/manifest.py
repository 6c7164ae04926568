"""Data model for a shadow sync run.

Render targets and results are transient values passed between the
discovery, render and publish stages. The sync and cleanup results are
serializable so they can be reported as json by the command line tool.
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

__all__ = [
    "TargetKind",
    "RenderTarget",
    "RenderResult",
    "DirFailure",
    "CleanupResult",
    "SyncResult",
    "Metadata",
]

_LOGGER = logging.getLogger(__name__)

SECRET_KIND = "Secret"
APPLICATION_KIND = "Application"
KUSTOMIZATION_FILE = "kustomization.yaml"
MANIFEST_FILE = "manifest.yaml"
META_FILE = "_meta.json"


class TargetKind(str, Enum):
    """The external tool used to render a target."""

    KUSTOMIZE = "kustomize"
    HELM = "helm"


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all serializable objects."""

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True, order=True)
class RenderTarget:
    """A single unit of work for the renderer."""

    path: str
    """Repository relative directory, or the output key of a Helm source."""

    kind: TargetKind = TargetKind.KUSTOMIZE

    cluster: str | None = None
    """Cluster name extracted from the path, when the layout has one."""

    app_name: str | None = None
    """Name of the Application that owns a Helm source."""

    source_index: int | None = None
    """Position of the Helm source within the Application."""

    @property
    def key(self) -> str | tuple[str, int]:
        """Return the identity of the target."""
        if self.kind == TargetKind.HELM and self.app_name is not None:
            return (self.app_name, self.source_index or 0)
        return self.path

    def __str__(self) -> str:
        if self.kind == TargetKind.HELM:
            return f"{self.app_name}[{self.source_index}]"
        return self.path


@dataclass
class RenderResult:
    """The outcome of rendering a single target."""

    target: RenderTarget

    output: str = ""
    """Rendered manifest text, or the captured tool output on failure."""

    passed: bool = False

    error: str | None = None

    skip_reason: str | None = None
    """Set when the target was not rendered, which is not a failure."""

    command: str | None = None
    """The command line that was run, for diagnostics."""

    attempts: int = 1

    @property
    def skipped(self) -> bool:
        """Return True if the target was skipped."""
        return self.skip_reason is not None


@dataclass
class DirFailure(BaseManifest):
    """A target that failed to render or to be written."""

    directory: str
    error: str


@dataclass
class CleanupResult(BaseManifest):
    """Branches examined and removed by the stale branch cleanup."""

    checked_branches: list[str] = field(default_factory=list)
    deleted_branches: list[str] = field(default_factory=list)
    skipped_branches: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class SyncResult(BaseManifest):
    """The aggregate outcome of a sync run."""

    shadow_repo: str
    base_branch: str
    branch: str
    compare_url: str = ""
    commit_sha: str = ""
    """Short sha of the commit, empty when there were no changes."""

    rendered_dirs: int = 0
    skipped_dirs: int = 0
    failed_dirs: int = 0

    helm_apps_rendered: int = 0
    helm_apps_failed: int = 0

    failures: list[DirFailure] = field(default_factory=list)

    cleanup: CleanupResult | None = None

    def add_failure(self, directory: str, error: str) -> None:
        """Record a per target failure."""
        _LOGGER.debug("Failure in %s: %s", directory, error)
        self.failures.append(DirFailure(directory=directory, error=error))

    def compact_dict(self) -> dict[str, Any]:
        """Return a dictionary representation without empty values."""
        data = self.to_dict()
        if not data.get("commit_sha"):
            data.pop("commit_sha", None)
        if not data.get("failures"):
            data.pop("failures", None)
        return data


@dataclass
class Metadata(BaseManifest):
    """Run metadata written alongside the rendered output."""

    source_repo: str = ""
    source_commit: str = ""
    pr: str | None = None
    clusters: list[str] = field(default_factory=list)
    generated_at: str = ""
    """RFC3339 timestamp in UTC."""
