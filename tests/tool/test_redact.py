"""Tests for the gitops-shadow `redact` command."""

from pathlib import Path

import pytest

from gitops_shadow.exceptions import CommandException
from gitops_shadow.redact import PLACEHOLDER

from . import run_command

MANIFEST = """apiVersion: v1
kind: Secret
metadata:
  name: example
data:
  password: c2VjcmV0
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: example
data:
  key: value
"""


async def test_redact(tmp_path: Path) -> None:
    """Test redacting a manifest file."""
    path = tmp_path / "manifest.yaml"
    path.write_text(MANIFEST)
    result = await run_command(["redact", str(path)])
    assert result == MANIFEST.replace("password: c2VjcmV0", PLACEHOLDER)


async def test_redact_missing_file(tmp_path: Path) -> None:
    """Test that a missing file is reported as an error."""
    with pytest.raises(CommandException, match="gitops-shadow error"):
        await run_command(["redact", str(tmp_path / "missing.yaml")])
