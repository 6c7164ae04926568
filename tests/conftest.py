"""Test fixtures for gitops-shadow."""

from collections.abc import Callable, Generator
import os
from pathlib import Path
import stat

import git
import pytest

FAKE_KUSTOMIZE = """#!/bin/sh
# Renders a ConfigMap named after the directory, or the contents of
# rendered.yaml when present. A FAIL file makes the build fail.
for arg; do dir="$arg"; done
if [ -f "$dir/FAIL" ]; then
  echo "# building $dir" >&2
  cat "$dir/FAIL" >&2
  exit 1
fi
if [ -f "$dir/rendered.yaml" ]; then
  cat "$dir/rendered.yaml"
  exit 0
fi
echo "apiVersion: v1"
echo "kind: ConfigMap"
echo "metadata:"
echo "  name: $(basename "$dir")"
"""

FAKE_HELM = """#!/bin/sh
# helm template <release> <chart> ...
echo "apiVersion: v1"
echo "kind: ConfigMap"
echo "metadata:"
echo "  name: $2"
echo "data:"
echo "  chart: $3"
"""


@pytest.fixture(autouse=True)
def git_identity(monkeypatch: pytest.MonkeyPatch) -> None:
    """Provide a commit identity and isolate tests from the user git config."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Shadow Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "shadow@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Shadow Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "shadow@example.com")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.delenv("GH_TOKEN", raising=False)


@pytest.fixture(name="fake_bin")
def fake_bin_fixture(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Callable[[str, str], Path]:
    """Return a function that installs a fake executable at the front of PATH."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def install(name: str, script: str) -> Path:
        path = bin_dir / name
        path.write_text(script)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return install


@pytest.fixture(name="fake_kustomize")
def fake_kustomize_fixture(fake_bin: Callable[[str, str], Path]) -> Path:
    """Install a fake kustomize binary."""
    return fake_bin("kustomize", FAKE_KUSTOMIZE)


@pytest.fixture(name="fake_helm")
def fake_helm_fixture(fake_bin: Callable[[str, str], Path]) -> Path:
    """Install a fake helm binary."""
    return fake_bin("helm", FAKE_HELM)


@pytest.fixture(name="seed_repo")
def seed_repo_fixture(tmp_path: Path) -> Generator[git.Repo, None, None]:
    """A working repository used to populate the shadow remote."""
    repo = git.Repo.init(str(tmp_path / "seed"), initial_branch="main")
    readme = Path(str(repo.working_dir)) / "README.md"
    readme.write_text("# Shadow Manifests\n")
    repo.git.add("README.md")
    repo.git.commit("-m", "Initial commit")
    yield repo
    repo.close()


@pytest.fixture(name="shadow_remote")
def shadow_remote_fixture(tmp_path: Path, seed_repo: git.Repo) -> Path:
    """A bare repository standing in for the shadow repository on GitHub."""
    remote_path = tmp_path / "shadow.git"
    git.Repo.init(str(remote_path), bare=True, initial_branch="main").close()
    seed_repo.create_remote("origin", str(remote_path))
    seed_repo.git.push("origin", "main")
    return remote_path
