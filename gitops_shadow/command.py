"""Library for issuing commands using asyncio and returning the result.

Commands are awaited one at a time by callers. The external build tools are
resource intensive so nothing in this package fans them out concurrently.
"""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shlex
import shutil
import subprocess

from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)


# No public API
__all__: list[str] = []


class Task(ABC):
    """An instance of a async task to execute."""

    @abstractmethod
    async def run(self, stdin: bytes | None = None) -> bytes:
        """Execute the task and return the result."""


def format_path(path: Path) -> str:
    """Format path for debugging."""
    if path.is_absolute():
        cwd = Path.cwd()
        if path.is_relative_to(cwd):
            rel_path = str(path.relative_to(cwd))
            return f"{rel_path} (abs)"
    return str(path)


def is_installed(binary: str) -> bool:
    """Return True if the binary can be found on the PATH."""
    return shutil.which(binary) is not None


@dataclass
class Command(Task):
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    cwd: Path | None = None
    """Current working directory."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    env: dict[str, str] | None = None
    """Environment variables for the subprocess."""

    combined: bool = False
    """Capture stderr interleaved with stdout, where the build tools report errors."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        cwd: str = ""
        if self.cwd:
            cwd = f"({format_path(self.cwd)}) "
        return f"{cwd}{self.string}"

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        proc = await asyncio.create_subprocess_shell(
            self.string,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if self.combined else subprocess.PIPE,
            cwd=self.cwd,
            env=env,
        )
        out, err = await proc.communicate(stdin)
        if proc.returncode:
            output = out.decode("utf-8", errors="replace") if out else ""
            if err:
                output += err.decode("utf-8", errors="replace")
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if output:
                errors.append(output)
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors), output=output)
        return out


async def run(cmd: Task) -> str:
    """Run the specified command and return stdout."""
    out = await cmd.run()
    return out.decode("utf-8", errors="replace") if out else ""
