"""Library for rendering a kustomization directory with `kustomize build`.

The build flags match the ArgoCD `kustomize.buildOptions` used to deploy the
source repository, so the rendered output is what the cluster would see:

```python
from gitops_shadow import kustomize

result = await kustomize.build(Path("/src/homelab"), "apps/demo/overlays/home/prod")
if result.passed:
    print(result.output)
```

A missing directory or missing `kustomization.yaml` is a skip, not a failure.
"""

import logging
from pathlib import Path

from . import command
from .command import Command
from .exceptions import KustomizeException
from .manifest import KUSTOMIZATION_FILE, RenderResult, RenderTarget, TargetKind

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "build",
    "extract_build_error",
    "version",
]

KUSTOMIZE_BIN = "kustomize"

BUILD_FLAGS = [
    "--load-restrictor=LoadRestrictionsNone",
    "--enable-helm",
    "--enable-alpha-plugins",
    "--enable-exec",
]

SKIP_DIR_NOT_FOUND = "directory not found"
SKIP_NO_KUSTOMIZATION = "no kustomization.yaml"

_MAX_TAIL_LINES = 5


def extract_build_error(output: str) -> str:
    """Return the error lines from kustomize build output.

    Falls back to the last few non-empty lines when the output has no
    explicit `Error:` lines.
    """
    lines = [line.strip() for line in output.split("\n")]
    errors = [
        line for line in lines if line.startswith("Error:") or line.startswith("error:")
    ]
    if errors:
        return "\n".join(errors)
    non_empty = [line for line in lines if line]
    return "\n".join(non_empty[-_MAX_TAIL_LINES:])


async def build(repo_root: Path, directory: str | RenderTarget) -> RenderResult:
    """Run kustomize build for a single directory relative to the repo root."""
    if isinstance(directory, RenderTarget):
        target = directory
    else:
        target = RenderTarget(path=directory, kind=TargetKind.KUSTOMIZE)
    abs_dir = repo_root / target.path

    if not abs_dir.is_dir():
        return RenderResult(target=target, skip_reason=SKIP_DIR_NOT_FOUND)
    if not (abs_dir / KUSTOMIZATION_FILE).is_file():
        return RenderResult(target=target, skip_reason=SKIP_NO_KUSTOMIZATION)

    cmd = Command(
        [KUSTOMIZE_BIN, "build", *BUILD_FLAGS, str(abs_dir)],
        exc=KustomizeException,
        combined=True,
    )
    try:
        output = await command.run(cmd)
    except KustomizeException as err:
        first_line = (
            extract_build_error(err.output).split("\n")[0] or str(err).split("\n")[0]
        )
        return RenderResult(
            target=target,
            output=err.output,
            passed=False,
            error=f"kustomize build failed: {first_line}\nOutput: {err.output}",
            command=cmd.string,
        )
    return RenderResult(target=target, output=output, passed=True, command=cmd.string)


async def version() -> str:
    """Return the installed kustomize version."""
    out = await command.run(Command([KUSTOMIZE_BIN, "version"], exc=KustomizeException))
    return out.strip()
