"""Narrow process-execution interface.

Business logic never spawns external binaries directly (aws CLI, git,
session-manager-plugin); it goes through a ProcessRunner so tests can
inject a fake.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from loguru import logger


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Immutable result of an external command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ProcessRunner(Protocol):
    """Runs an external command."""

    async def run(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        capture: bool = True,
        timeout: float | None = None,
    ) -> CommandResult: ...


class AsyncProcessRunner:
    """ProcessRunner backed by asyncio subprocesses.

    With ``capture=False`` the child inherits the terminal (interactive
    sessions) and only the exit code is reported.
    """

    async def run(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        capture: bool = True,
        timeout: float | None = None,
    ) -> CommandResult:
        merged_env = {**os.environ, **env} if env else None
        stream = asyncio.subprocess.PIPE if capture else None

        logger.debug(f"Running: {' '.join(command)}")
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=stream,
            stderr=stream,
            env=merged_env,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise

        return CommandResult(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=(stdout or b"").decode(errors="replace"),
            stderr=(stderr or b"").decode(errors="replace"),
        )


__all__ = ["AsyncProcessRunner", "CommandResult", "ProcessRunner"]
