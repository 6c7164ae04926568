"""Tests for command library."""

import pytest

from gitops_shadow.command import Command, is_installed, run
from gitops_shadow.exceptions import CommandException, KustomizeException


async def test_command() -> None:
    """Test stdout parsing of a command."""
    result = await run(Command(["echo", "Hello"]))
    assert result == "Hello\n"


async def test_failed_command() -> None:
    """Test a failing command."""
    with pytest.raises(CommandException, match="return code 1"):
        await run(Command(["/bin/false"]))


async def test_failed_command_output() -> None:
    """Test that combined output of a failure is kept on the exception."""
    cmd = Command(
        ["sh", "-c", "echo building; echo 'Error: boom' >&2; exit 3"],
        exc=KustomizeException,
        combined=True,
    )
    with pytest.raises(KustomizeException, match="return code 3") as exc_info:
        await run(cmd)
    assert exc_info.value.output == "building\nError: boom\n"


async def test_command_env() -> None:
    """Test passing extra environment variables."""
    result = await run(Command(["sh", "-c", "echo $GREETING"], env={"GREETING": "hi"}))
    assert result == "hi\n"


def test_command_string() -> None:
    """Test that arguments are quoted for the shell."""
    assert Command(["echo", "a b"]).string == "echo 'a b'"


def test_is_installed() -> None:
    """Test looking up a binary on the PATH."""
    assert is_installed("sh")
    assert not is_installed("gitops-shadow-no-such-binary")


async def test_command_invalid_utf8() -> None:
    """Test that output that is not valid utf-8 is decoded with replacements."""
    result = await run(Command(["printf", "a: \\377\\n"]))
    assert result == "a: \ufffd\n"
