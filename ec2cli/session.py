"""Session Manager access to instances.

The broker itself (aws CLI plus session-manager-plugin) is an opaque
external command; this module only builds its invocations and passes the
exit codes through.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from injector import inject
from loguru import logger

from ec2cli.config import Settings
from ec2cli.exceptions import SessionBrokerError
from ec2cli.process import ProcessRunner

PLUGIN_BINARY: Final = "session-manager-plugin"
SSH_DOCUMENT: Final = "AWS-StartSSHSession"

PLUGIN_INSTALL_HINT: Final = (
    "Install it from "
    "https://docs.aws.amazon.com/systems-manager/latest/userguide/session-manager-working-with-install-plugin.html"
)


@inject
@dataclass
class SessionBroker:
    runner: ProcessRunner
    settings: Settings

    def _region_args(self) -> list[str]:
        return ["--region", self.settings.region] if self.settings.region else []

    async def ensure_plugin(self) -> str:
        """Check the plugin is installed and return its version.

        Raises:
            SessionBrokerError: Plugin missing or not runnable.
        """
        try:
            result = await self.runner.run([PLUGIN_BINARY, "--version"])
        except FileNotFoundError:
            raise SessionBrokerError(f"{PLUGIN_BINARY} not found. {PLUGIN_INSTALL_HINT}") from None
        if not result.success:
            raise SessionBrokerError(
                f"{PLUGIN_BINARY} failed (exit {result.exit_code}): {result.stderr.strip()}. "
                f"{PLUGIN_INSTALL_HINT}"
            )
        return result.stdout.strip()

    def start_session_command(self, instance_id: str) -> list[str]:
        return ["aws", "ssm", "start-session", "--target", instance_id, *self._region_args()]

    async def start_session(self, instance_id: str) -> int:
        """Open an interactive shell and return the broker's exit code unchanged."""
        await self.ensure_plugin()
        logger.info(f"Starting session to {instance_id}")
        try:
            result = await self.runner.run(self.start_session_command(instance_id), capture=False)
        except FileNotFoundError:
            raise SessionBrokerError("aws CLI not found on PATH") from None
        return result.exit_code

    def proxy_command(self, instance_id: str | None = None) -> str:
        """SSH ``ProxyCommand`` tunnelling through Session Manager.

        Without an instance id, ``%h`` is left for ssh to substitute.
        """
        target = instance_id or "%h"
        region = f" --region {self.settings.region}" if self.settings.region else ""
        return (
            f'sh -c "aws ssm start-session --target {target} '
            f'--document-name {SSH_DOCUMENT} --parameters portNumber=%p{region}"'
        )


__all__ = ["SessionBroker"]
