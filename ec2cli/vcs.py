"""Local git identity discovery."""

from __future__ import annotations

from loguru import logger

from ec2cli.bootstrap import VcsIdentity
from ec2cli.process import ProcessRunner


async def _git_config(runner: ProcessRunner, key: str) -> str | None:
    try:
        result = await runner.run(["git", "config", "--global", key])
    except FileNotFoundError:
        logger.debug("git not installed; skipping identity")
        return None
    value = result.stdout.strip()
    return value if result.success and value else None


async def find_vcs_identity(runner: ProcessRunner) -> VcsIdentity | None:
    """Read the global git user.name and user.email.

    Missing values are not errors; None means neither is set.
    """
    identity = VcsIdentity(
        name=await _git_config(runner, "user.name"),
        email=await _git_config(runner, "user.email"),
    )
    return None if identity.is_empty else identity


__all__ = ["find_vcs_identity"]
