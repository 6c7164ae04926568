"""Library for classifying repository paths as render targets.

The source repository follows a multi-cluster directory convention that is in
the middle of a migration. Legacy app overlays are flat while new app
overlays have a cluster layer between `overlays` (or `stack`) and the
environment:

```
apps/<app>/overlays/<env>                    # legacy
apps/<app>/overlays/<cluster>/<env>          # cluster layered
apps/<app>/stack/<cluster>/<env>
apps/<app>/db/overlays/<cluster>/<env>
infrastructure/<component>/overlays/<cluster>
```

Each layout is modeled as a `Shape` with its own recognizer. Shapes are
evaluated in a fixed precedence order, most specific first:

```python
from gitops_shadow import paths

target = paths.classify("apps/demo/overlays/home/production")
assert target.cluster == "home"
```

Everything here is a pure function of the path string. Deciding whether a
legacy match is really a cluster container requires looking at the
filesystem and is done by the discovery step.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path, PurePosixPath

from .manifest import RenderTarget, TargetKind

__all__ = [
    "ShapeKind",
    "Shape",
    "SHAPES",
    "match_shape",
    "classify",
    "extract_cluster",
]

_LOGGER = logging.getLogger(__name__)

APPS_ROOT = "apps"
INFRA_ROOTS = ("infrastructure", "operators", "security")
ROOT_CATEGORIES = (APPS_ROOT, *INFRA_ROOTS)
BASE_DIR = "base"
OVERLAYS_DIR = "overlays"
STACK_DIR = "stack"
DB_DIR = "db"


class ShapeKind(str, Enum):
    """A recognized directory layout."""

    CLUSTERED_APP = "clustered-app"
    CLUSTERED_STACK = "clustered-stack"
    CLUSTERED_DB_OVERLAY = "clustered-db-overlay"
    LEGACY_APP = "legacy-app"
    INFRA_OVERLAY = "infra-overlay"


@dataclass(frozen=True)
class Shape:
    """A directory layout with the glob patterns that enumerate candidates."""

    kind: ShapeKind

    patterns: tuple[str, ...]
    """Glob patterns relative to the repository root."""

    recognizer: Callable[[tuple[str, ...]], str | None]
    """Returns the cluster name (or an empty string) if the parts match."""

    @property
    def legacy(self) -> bool:
        """Return True if the shape predates the cluster layer."""
        return self.kind == ShapeKind.LEGACY_APP

    def match(self, parts: tuple[str, ...]) -> str | None:
        """Return the cluster name for a match, empty when there is none."""
        return self.recognizer(parts)


def _clustered_app(parts: tuple[str, ...]) -> str | None:
    if len(parts) == 5 and parts[0] == APPS_ROOT and parts[2] == OVERLAYS_DIR:
        return parts[3]
    return None


def _clustered_stack(parts: tuple[str, ...]) -> str | None:
    if len(parts) == 5 and parts[0] == APPS_ROOT and parts[2] == STACK_DIR:
        return parts[3]
    return None


def _clustered_db_overlay(parts: tuple[str, ...]) -> str | None:
    if (
        len(parts) == 6
        and parts[0] == APPS_ROOT
        and parts[2] == DB_DIR
        and parts[3] == OVERLAYS_DIR
    ):
        return parts[4]
    return None


def _legacy_app(parts: tuple[str, ...]) -> str | None:
    if parts[0] != APPS_ROOT:
        return None
    if len(parts) == 4 and parts[2] in (OVERLAYS_DIR, STACK_DIR):
        return ""
    if len(parts) == 5 and parts[2] == DB_DIR and parts[3] == OVERLAYS_DIR:
        return ""
    return None


def _infra_overlay(parts: tuple[str, ...]) -> str | None:
    if len(parts) == 4 and parts[0] in INFRA_ROOTS and parts[2] == OVERLAYS_DIR:
        return parts[3]
    return None


SHAPES: tuple[Shape, ...] = (
    Shape(ShapeKind.CLUSTERED_APP, ("apps/*/overlays/*/*",), _clustered_app),
    Shape(ShapeKind.CLUSTERED_STACK, ("apps/*/stack/*/*",), _clustered_stack),
    Shape(
        ShapeKind.CLUSTERED_DB_OVERLAY,
        ("apps/*/db/overlays/*/*",),
        _clustered_db_overlay,
    ),
    Shape(
        ShapeKind.LEGACY_APP,
        ("apps/*/overlays/*", "apps/*/stack/*", "apps/*/db/overlays/*"),
        _legacy_app,
    ),
    Shape(
        ShapeKind.INFRA_OVERLAY,
        tuple(f"{root}/*/overlays/*" for root in INFRA_ROOTS),
        _infra_overlay,
    ),
)
"""All shapes in precedence order."""


def _parts(relative_path: str | Path) -> tuple[str, ...]:
    path = PurePosixPath(Path(relative_path).as_posix())
    return tuple(part for part in path.parts if part not in ("", "."))


def match_shape(relative_path: str | Path) -> tuple[Shape, str | None] | None:
    """Return the first shape matching the path along with its cluster name."""
    parts = _parts(relative_path)
    if not parts or parts[-1] == BASE_DIR:
        return None
    for shape in SHAPES:
        if (cluster := shape.match(parts)) is not None:
            return (shape, cluster or None)
    return None


def classify(relative_path: str | Path) -> RenderTarget | None:
    """Return a render target for a deployment relevant path, or None."""
    if (result := match_shape(relative_path)) is None:
        return None
    _, cluster = result
    return RenderTarget(
        path="/".join(_parts(relative_path)),
        kind=TargetKind.KUSTOMIZE,
        cluster=cluster,
    )


def extract_cluster(relative_path: str | Path) -> tuple[str, bool]:
    """Return the cluster name of a path and whether one was found."""
    if (result := match_shape(relative_path)) is None:
        return ("", False)
    _, cluster = result
    if cluster is None:
        return ("", False)
    return (cluster, True)
