"""Library for running `helm template` for Helm sources of ArgoCD Applications.

Options are built from an Application Helm source, resolving `$values/` file
references against the local checkout of the repository:

```python
from gitops_shadow import argocd, helm

for app in argocd.discover_helm_applications(repo_root):
    for index, source in enumerate(app.helm_sources()):
        result = await helm.render_source(app, source, repo_root, index=index)
        print(result.target, result.passed)
```

OCI charts are referenced as `oci://<registry>/<chart>` and are templated
without `--repo`.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging
from pathlib import Path

import aiofiles.tempfile

from . import command
from .argocd import (
    Application,
    Source,
    is_oci_registry,
    normalize_oci_url,
    resolve_value_files,
)
from .command import Command
from .exceptions import HelmException, ValuesFileNotFound
from .manifest import RenderResult, RenderTarget, TargetKind

__all__ = [
    "TemplateOptions",
    "template",
    "template_options",
    "template_with_retry",
    "render_source",
    "helm_target",
    "is_retryable_error",
    "version",
]

_LOGGER = logging.getLogger(__name__)

HELM_BIN = "helm"

# Substrings of helm error output that indicate a transient network problem.
# Helm reports errors as plain text so this is a best-effort heuristic.
RETRYABLE_PATTERNS = (
    "timeout",
    "connection refused",
    "connection reset",
    "no such host",
    "temporary failure",
    "network is unreachable",
    "i/o timeout",
    "tls handshake timeout",
    "eof",
)


@dataclass
class TemplateOptions:
    """Options for a single helm template invocation."""

    chart: str
    """Chart name, or a full oci:// chart reference."""

    release_name: str | None = None
    """Defaults to the chart name."""

    namespace: str | None = None

    repo_url: str | None = None
    """Value of the --repo flag, unset for OCI charts."""

    version: str | None = None

    value_files: list[str] = field(default_factory=list)

    inline_values: str | None = None
    """Values YAML written to a temporary file for the duration of the call."""

    def args(self, inline_values_file: str | None = None) -> list[str]:
        """Helm template CLI arguments built from the options."""
        args = [
            HELM_BIN,
            "template",
            self.release_name or self.chart,
            self.chart,
        ]
        if self.repo_url:
            args.extend(["--repo", self.repo_url])
        if self.version:
            args.extend(["--version", self.version])
        if self.namespace:
            args.extend(["--namespace", self.namespace])
        for value_file in self.value_files:
            args.extend(["--values", value_file])
        if inline_values_file:
            args.extend(["--values", inline_values_file])
        args.append("--include-crds")
        return args


def is_retryable_error(message: str | None) -> bool:
    """Return True if the error message looks like a transient failure."""
    if not message:
        return False
    lowered = message.lower()
    return any(pattern in lowered for pattern in RETRYABLE_PATTERNS)


def helm_target(app: Application, index: int = 0) -> RenderTarget:
    """Return the render target for the Helm source of an Application."""
    suffix = "helm" if index == 0 else f"helm-{index}"
    return RenderTarget(
        path=f"apps/{app.name}/{suffix}",
        kind=TargetKind.HELM,
        app_name=app.name,
        source_index=index,
    )


def template_options(
    app: Application, source: Source, repo_root: Path
) -> TemplateOptions:
    """Build template options for an Application Helm source.

    Raises `ValuesFileNotFound` if a `$values/` reference cannot be resolved.
    """
    value_files: list[str] = []
    inline_values: str | None = None
    release_name = app.name
    if source.helm:
        if source.helm.value_files:
            value_files = resolve_value_files(source.helm.value_files, repo_root)
        inline_values = source.helm.values
        if source.helm.release_name:
            release_name = source.helm.release_name

    chart = source.chart or ""
    repo_url: str | None = source.repo_url
    if is_oci_registry(source.repo_url):
        # The chart reference encodes the registry so --repo is not used
        chart = f"{normalize_oci_url(source.repo_url).rstrip('/')}/{chart}"
        repo_url = None
    return TemplateOptions(
        chart=chart,
        release_name=release_name,
        namespace=app.namespace or None,
        repo_url=repo_url or None,
        version=source.target_revision or None,
        value_files=value_files,
        inline_values=inline_values,
    )


async def _run_template(options: TemplateOptions, target: RenderTarget) -> RenderResult:
    if options.inline_values:
        async with aiofiles.tempfile.NamedTemporaryFile(
            mode="w", prefix="helm-values-", suffix=".yaml"
        ) as values_file:
            await values_file.write(options.inline_values)
            await values_file.flush()
            return await _run(options.args(str(values_file.name)), target)
    return await _run(options.args(), target)


async def _run(args: list[str], target: RenderTarget) -> RenderResult:
    cmd = Command(args, exc=HelmException, combined=True)
    try:
        output = await command.run(cmd)
    except HelmException as err:
        return RenderResult(
            target=target,
            output=err.output,
            passed=False,
            error=f"helm template failed: {err}",
            command=cmd.string,
        )
    return RenderResult(target=target, output=output, passed=True, command=cmd.string)


async def template(
    options: TemplateOptions, target: RenderTarget | None = None
) -> RenderResult:
    """Run helm template, returning the result.

    A non-zero exit is a failure on the result. There is no retry here, see
    `template_with_retry`.
    """
    if target is None:
        target = RenderTarget(
            path=options.release_name or options.chart, kind=TargetKind.HELM
        )
    return await _run_template(options, target)


async def template_with_retry(
    options: TemplateOptions,
    target: RenderTarget | None = None,
    retries: int = 0,
    delay: float = 0.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RenderResult:
    """Run helm template, retrying transient failures.

    Retries up to `retries` additional times, sleeping `delay` seconds
    between attempts, only while the latest failure is retryable.
    """
    attempt = 0
    while True:
        attempt += 1
        result = await template(options, target)
        result.attempts = attempt
        if result.passed or attempt > retries or not is_retryable_error(result.error):
            return result
        _LOGGER.info(
            "Retry %d/%d for %s after %ss", attempt, retries, result.target, delay
        )
        await sleep(delay)


async def render_source(
    app: Application,
    source: Source,
    repo_root: Path,
    index: int = 0,
    retries: int = 0,
    delay: float = 0.0,
) -> RenderResult:
    """Render a single Helm source of an Application.

    Value file resolution failures are reported on the result.
    """
    target = helm_target(app, index)
    try:
        options = template_options(app, source, repo_root)
    except ValuesFileNotFound as err:
        return RenderResult(
            target=target,
            passed=False,
            error=f"failed to resolve value files: {err}",
        )
    _LOGGER.debug(
        "Rendering Helm chart for %s: %s/%s@%s",
        app.name,
        source.repo_url,
        source.chart,
        source.target_revision,
    )
    return await template_with_retry(options, target, retries=retries, delay=delay)


async def version() -> str:
    """Return the installed helm version."""
    out = await command.run(
        Command([HELM_BIN, "version", "--short"], exc=HelmException)
    )
    return out.strip()
