"""Tests for kustomize library."""

from collections.abc import Callable
from pathlib import Path

import pytest

from gitops_shadow import kustomize
from gitops_shadow.manifest import RenderTarget

TESTDATA_DIR = Path("tests/testdata/homelab")


@pytest.mark.usefixtures("fake_kustomize")
async def test_build() -> None:
    """Test building a kustomization directory."""
    result = await kustomize.build(TESTDATA_DIR, "apps/demo/overlays/production")
    assert result.passed
    assert not result.skipped
    assert result.error is None
    assert "name: production" in result.output
    assert result.command is not None
    assert result.command.startswith("kustomize build --load-restrictor")
    assert "--enable-helm" in result.command


@pytest.mark.usefixtures("fake_kustomize")
async def test_build_target() -> None:
    """Test that a render target is carried through to the result."""
    target = RenderTarget(path="apps/web/overlays/home/production", cluster="home")
    result = await kustomize.build(TESTDATA_DIR, target)
    assert result.passed
    assert result.target is target


@pytest.mark.usefixtures("fake_kustomize")
async def test_build_missing_directory() -> None:
    """Test that a missing directory is skipped."""
    result = await kustomize.build(TESTDATA_DIR, "apps/missing/overlays/production")
    assert not result.passed
    assert result.skip_reason == kustomize.SKIP_DIR_NOT_FOUND


@pytest.mark.usefixtures("fake_kustomize")
async def test_build_missing_kustomization() -> None:
    """Test that a directory without a kustomization is skipped."""
    result = await kustomize.build(TESTDATA_DIR, "apps/notes/overlays/production")
    assert result.skipped
    assert result.skip_reason == kustomize.SKIP_NO_KUSTOMIZATION


@pytest.mark.usefixtures("fake_kustomize")
async def test_build_failure(tmp_path: Path) -> None:
    """Test that a build failure is reported on the result."""
    overlay = tmp_path / "apps/demo/overlays/production"
    overlay.mkdir(parents=True)
    (overlay / "kustomization.yaml").write_text("resources:\n- missing.yaml\n")
    (overlay / "FAIL").write_text("Error: accumulating resources: missing.yaml\n")

    result = await kustomize.build(tmp_path, "apps/demo/overlays/production")
    assert not result.passed
    assert not result.skipped
    assert result.error is not None
    assert result.error.startswith(
        "kustomize build failed: Error: accumulating resources: missing.yaml\n"
    )
    assert "Output: # building" in result.error


def test_extract_build_error() -> None:
    """Test extracting the error lines of kustomize output."""
    output = "# noise\nError: first problem\n  error: second problem\ntrailing\n"
    assert kustomize.extract_build_error(output) == (
        "Error: first problem\nerror: second problem"
    )


def test_extract_build_error_tail() -> None:
    """Test the fallback to the last non-empty lines."""
    output = "\n".join(f"line {i}" for i in range(10)) + "\n\n"
    assert kustomize.extract_build_error(output) == (
        "line 5\nline 6\nline 7\nline 8\nline 9"
    )
    assert kustomize.extract_build_error("") == ""


async def test_version(fake_bin: Callable[[str, str], Path]) -> None:
    """Test reading the kustomize version."""
    fake_bin("kustomize", "#!/bin/sh\necho v5.4.3\n")
    assert await kustomize.version() == "v5.4.3"


async def test_build_invalid_utf8(fake_bin: Callable[[str, str], Path]) -> None:
    """Test that output that is not valid utf-8 does not fail the build."""
    fake_bin("kustomize", "#!/bin/sh\nprintf 'a: \\377\\n'\n")
    result = await kustomize.build(TESTDATA_DIR, "apps/demo/overlays/production")
    assert result.passed
    assert result.output == "a: \ufffd\n"
