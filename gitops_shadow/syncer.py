"""Library for publishing rendered manifests to a shadow repository.

The syncer renders every deployment relevant kustomization and every Helm
source of an ArgoCD Application in the source repository, redacts Secrets,
and pushes the output to a branch of the shadow repository. Reviewers can
then use a GitHub compare url to see the real manifest changes of a pull
request:

```python
from gitops_shadow import syncer

options = syncer.Options(
    repo_path=Path("/src/homelab"),
    shadow_repo="erauner/homelab-k8s-shadow",
    pr_number="950",
)
result = await syncer.Syncer(options).run()
print(result.compare_url)
```

The shadow repository layout mirrors the source repository:
```
rendered/apps/demo/overlays/home/production/manifest.yaml
rendered/apps/krr/helm/manifest.yaml
rendered/_meta.json
```

Per target render failures are recorded in the result and do not stop the
run. Failures to clone, commit or push raise an exception.
"""

from dataclasses import dataclass, field, replace
import datetime
import json
import logging
from pathlib import Path
import shutil
import tempfile
import time

import aiofiles

from . import argocd, helm, kustomize
from .cleanup import cleanup_stale_branches
from .command import is_installed
from .discover import discover_targets
from .exceptions import InputException, ShadowException
from .git_repo import ShadowRepo, compare_url
from .github import GitHubClient
from .manifest import (
    MANIFEST_FILE,
    META_FILE,
    Metadata,
    RenderResult,
    RenderTarget,
    SyncResult,
)
from .redact import redact_secrets

__all__ = [
    "Options",
    "Syncer",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_BRANCH = "main"
DEFAULT_OUTPUT_ROOT = "rendered"
COMMIT_MESSAGE = "shadow sync"
SHORT_SHA_LEN = 7


@dataclass
class Options:
    """Configuration for a sync run."""

    repo_path: Path | None = None
    """Local checkout of the source repository."""

    shadow_repo: str = ""
    """Shadow repository as a GitHub slug (owner/repo) or git url."""

    clusters: list[str] = field(default_factory=list)
    """Clusters to render, empty for all."""

    base_branch: str = DEFAULT_BASE_BRANCH

    branch: str = ""
    """Target branch, defaults to `pr-<number>` or `local-<timestamp>`."""

    output_root: str = DEFAULT_OUTPUT_ROOT

    force_push: bool = True
    """Shadow content is fully regenerated so there is no history to keep."""

    redact_secrets: bool = True

    cleanup_merged: bool = False
    """Delete pr-* branches of closed or merged pull requests."""

    source_commit: str = ""
    source_repo: str = ""
    """Source repository slug, used for metadata and branch cleanup."""

    pr_number: str = ""

    token: str | None = None
    """GitHub token, defaults to the `GH_TOKEN` environment variable."""

    enable_helm: bool = True
    """Render Helm sources of ArgoCD Applications."""

    helm_retries: int = 0
    helm_retry_delay: float = 2.0

    def with_defaults(self) -> "Options":
        """Return a copy with default values filled in."""
        branch = self.branch
        if not branch:
            if self.pr_number:
                branch = f"pr-{self.pr_number}"
            else:
                branch = f"local-{int(time.time())}"
        return replace(
            self,
            base_branch=self.base_branch or DEFAULT_BASE_BRANCH,
            output_root=self.output_root or DEFAULT_OUTPUT_ROOT,
            branch=branch,
        )


def commit_message(options: Options) -> str:
    """Build the commit message with the source metadata."""
    message = COMMIT_MESSAGE
    if options.source_repo and options.source_commit:
        message += f": {options.source_repo}@{options.source_commit[:SHORT_SHA_LEN]}"
    if options.pr_number:
        message += f" PR #{options.pr_number}"
    return message


async def write_manifest(path: Path, content: str) -> None:
    """Write rendered content, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, mode="w") as manifest_file:
        await manifest_file.write(content)


def read_metadata(path: Path) -> Metadata | None:
    """Read the metadata of a previous run, if present and valid."""
    if not path.is_file():
        return None
    try:
        return Metadata.from_dict(json.loads(path.read_text()))
    except (ValueError, TypeError) as err:
        _LOGGER.debug("Ignoring invalid metadata %s: %s", path, err)
        return None


class Syncer:
    """Manages the shadow repository sync process."""

    def __init__(self, options: Options) -> None:
        """Initialize Syncer, raising `InputException` for missing options."""
        if not options.repo_path:
            raise InputException("repo_path is required")
        if not options.shadow_repo:
            raise InputException("shadow_repo is required")
        self._options = options.with_defaults()
        self._repo_path = Path(options.repo_path)

    @property
    def options(self) -> Options:
        """Return the options with defaults applied."""
        return self._options

    async def run(self) -> SyncResult:
        """Run the sync, returning the aggregate result."""
        opts = self._options
        result = SyncResult(
            shadow_repo=opts.shadow_repo,
            base_branch=opts.base_branch,
            branch=opts.branch,
        )

        targets = discover_targets(self._repo_path, opts.clusters)
        _LOGGER.info("Discovered %d directories to render", len(targets))
        if is_installed(kustomize.KUSTOMIZE_BIN):
            _LOGGER.debug("Using kustomize %s", await kustomize.version())

        with tempfile.TemporaryDirectory(prefix="shadow-sync-") as temp_dir:
            repo = ShadowRepo.clone(
                opts.shadow_repo, Path(temp_dir) / "shadow", token=opts.token
            )
            _LOGGER.info(
                "Checking out branch %s (base: %s)", opts.branch, opts.base_branch
            )
            repo.checkout_branch(opts.base_branch, opts.branch)

            output_dir = repo.path / opts.output_root
            previous = read_metadata(output_dir / META_FILE)
            if output_dir.exists():
                shutil.rmtree(output_dir)
            output_dir.mkdir(parents=True)

            for target in targets:
                await self._render_kustomize(target, output_dir, result)
            await self._render_helm(output_dir, result)

            self._write_metadata(repo, output_dir, previous)

            if sha := repo.commit_all(commit_message(opts)):
                result.commit_sha = sha
                _LOGGER.info("Committed changes: %s", sha)
            else:
                _LOGGER.info("No changes to commit")

            _LOGGER.info(
                "Pushing to origin/%s (force=%s)", opts.branch, opts.force_push
            )
            repo.push(opts.branch, force=opts.force_push)
            result.compare_url = compare_url(
                opts.shadow_repo, opts.base_branch, opts.branch
            )

            if opts.cleanup_merged and opts.source_repo:
                await self._cleanup(repo, result)

        _LOGGER.info(
            "Rendered %d, skipped %d, failed %d directories; "
            "Helm rendered %d, failed %d",
            result.rendered_dirs,
            result.skipped_dirs,
            result.failed_dirs,
            result.helm_apps_rendered,
            result.helm_apps_failed,
        )
        return result

    def _output(self, render: RenderResult) -> str:
        if self._options.redact_secrets:
            return redact_secrets(render.output)
        return render.output

    async def _render_kustomize(
        self, target: RenderTarget, output_dir: Path, result: SyncResult
    ) -> None:
        _LOGGER.debug("Building %s", target.path)
        render = await kustomize.build(self._repo_path, target)
        if render.skipped:
            _LOGGER.debug("Skipped %s: %s", target.path, render.skip_reason)
            result.skipped_dirs += 1
            return
        if not render.passed:
            result.failed_dirs += 1
            result.add_failure(target.path, render.error or "kustomize build failed")
            return
        try:
            await write_manifest(
                output_dir / target.path / MANIFEST_FILE, self._output(render)
            )
        except OSError as err:
            result.failed_dirs += 1
            result.add_failure(target.path, f"failed to write manifest: {err}")
            return
        result.rendered_dirs += 1

    async def _render_helm(self, output_dir: Path, result: SyncResult) -> None:
        opts = self._options
        if not opts.enable_helm:
            return
        if not is_installed(helm.HELM_BIN):
            _LOGGER.info("Helm not installed, skipping Helm chart rendering")
            return
        _LOGGER.debug("Using helm %s", await helm.version())
        apps = argocd.discover_helm_applications(self._repo_path)
        _LOGGER.info("Discovered %d Applications with Helm sources", len(apps))
        for app in apps:
            for index, source in enumerate(app.helm_sources()):
                render = await helm.render_source(
                    app,
                    source,
                    self._repo_path,
                    index=index,
                    retries=opts.helm_retries,
                    delay=opts.helm_retry_delay,
                )
                path = render.target.path
                if not render.passed:
                    result.helm_apps_failed += 1
                    result.add_failure(path, render.error or "helm template failed")
                    continue
                try:
                    await write_manifest(
                        output_dir / path / MANIFEST_FILE, self._output(render)
                    )
                except OSError as err:
                    result.helm_apps_failed += 1
                    result.add_failure(path, f"failed to write manifest: {err}")
                    continue
                result.helm_apps_rendered += 1

    def _write_metadata(
        self, repo: ShadowRepo, output_dir: Path, previous: Metadata | None
    ) -> None:
        opts = self._options
        now = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
        meta = Metadata(
            source_repo=opts.source_repo,
            source_commit=opts.source_commit,
            pr=opts.pr_number or None,
            clusters=list(opts.clusters),
            generated_at=now.isoformat().replace("+00:00", "Z"),
        )
        # Keep the previous timestamp when nothing else changed so that an
        # identical rerun produces no commit.
        if previous is not None and replace(
            previous, generated_at=meta.generated_at
        ) == meta:
            meta_path = f"{opts.output_root}/{META_FILE}"
            if all(path == meta_path for path in repo.changed_paths()):
                meta.generated_at = previous.generated_at
        try:
            content = json.dumps(meta.to_dict(), indent=2)
        except (TypeError, ValueError) as err:
            raise ShadowException(f"Failed to serialize metadata: {err}") from err
        (output_dir / META_FILE).write_text(content + "\n")

    async def _cleanup(self, repo: ShadowRepo, result: SyncResult) -> None:
        opts = self._options
        _LOGGER.info("Running cleanup for merged PR branches")
        try:
            async with GitHubClient(token=opts.token) as client:
                result.cleanup = await cleanup_stale_branches(
                    repo, opts.source_repo, client
                )
        except ShadowException as err:
            _LOGGER.warning("Cleanup failed: %s", err)
            return
        if result.cleanup.deleted_branches:
            _LOGGER.info(
                "Deleted %d stale branches", len(result.cleanup.deleted_branches)
            )
