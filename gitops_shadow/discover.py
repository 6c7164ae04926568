"""Library for discovering the kustomization directories to render.

Discovery globs every recognized shape under the repository root categories
and keeps directories that directly contain a `kustomization.yaml`:

```python
from gitops_shadow import discover

for path in discover.discover(Path("/src/homelab"), clusters=["home"]):
    print(path)
```

The result is sorted and deduplicated so that reruns over an unchanged tree
produce identical output.
"""

from collections.abc import Iterable
import logging
from pathlib import Path

from .manifest import KUSTOMIZATION_FILE, RenderTarget
from .paths import SHAPES, classify, match_shape

__all__ = [
    "discover",
    "discover_targets",
    "is_cluster_container",
]

_LOGGER = logging.getLogger(__name__)


def is_cluster_container(directory: Path) -> bool:
    """Return True if a direct subdirectory has its own kustomization.

    A legacy shaped match like `apps/<app>/overlays/<cluster>` that holds
    environment directories is a container for the cluster layered targets
    and must not be rendered itself.
    """
    for child in directory.iterdir():
        if child.is_dir() and (child / KUSTOMIZATION_FILE).is_file():
            return True
    return False


def _candidates(repo_root: Path, pattern: str) -> Iterable[str]:
    for match in repo_root.glob(f"{pattern}/{KUSTOMIZATION_FILE}"):
        if not match.is_file():
            continue
        yield match.parent.relative_to(repo_root).as_posix()


def discover_targets(
    repo_root: Path, clusters: Iterable[str] | None = None
) -> list[RenderTarget]:
    """Return the render targets for deployment relevant directories.

    When `clusters` is non-empty, targets with a cluster outside the filter
    are dropped. Legacy app targets have no cluster and are always kept.
    """
    cluster_filter = set(clusters or [])
    targets: dict[str, RenderTarget] = {}
    for shape in SHAPES:
        for pattern in shape.patterns:
            for relative in _candidates(repo_root, pattern):
                if relative in targets:
                    continue
                # Only accept the candidate for the shape that owns it
                result = match_shape(relative)
                if result is None or result[0] is not shape:
                    continue
                if shape.legacy and is_cluster_container(repo_root / relative):
                    _LOGGER.debug("Skipping cluster container %s", relative)
                    continue
                if (target := classify(relative)) is None:
                    continue
                if (
                    cluster_filter
                    and target.cluster is not None
                    and target.cluster not in cluster_filter
                ):
                    _LOGGER.debug(
                        "Skipping %s for cluster %s", relative, target.cluster
                    )
                    continue
                targets[relative] = target
    _LOGGER.debug("Discovered %d targets in %s", len(targets), repo_root)
    return [targets[key] for key in sorted(targets)]


def discover(repo_root: Path, clusters: Iterable[str] | None = None) -> list[str]:
    """Return the sorted relative paths of directories to render."""
    return [target.path for target in discover_targets(repo_root, clusters)]
