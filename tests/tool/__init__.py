"""Test helpers for gitops-shadow tools."""

from gitops_shadow.command import Command, run

SHADOW_BIN = "gitops-shadow"


async def run_command(args: list[str], env: dict[str, str] | None = None) -> str:
    return await run(Command([SHADOW_BIN] + args, env=env))
