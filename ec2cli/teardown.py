"""Instance teardown.

Terminates an instance, waits for EC2 to confirm it, and reclaims the
per-instance security group. Once the instance is gone, cleanup failures
are reported as warnings rather than raised: the user-visible outcome is
"destroyed, with a manual cleanup note".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from botocore.exceptions import ClientError
from injector import inject
from loguru import logger
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from ec2cli.clients import EC2ClientFactory
from ec2cli.clock import Clock
from ec2cli.constants import SG_DELETE_ATTEMPTS, SG_DELETE_INTERVAL
from ec2cli.exceptions import Ec2CliError, is_not_found, translate_client_error
from ec2cli.security_group import SecurityGroupManager
from ec2cli.waiter import ReadinessWaiter


@dataclass(frozen=True, slots=True)
class TeardownReport:
    """Outcome of a destroy. ``warnings`` lists cleanup left to the user."""

    instance_id: str
    already_gone: bool = False
    security_group_deleted: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def clean(self) -> bool:
        return not self.warnings


def manual_cleanup_command(group_id: str) -> str:
    return f"aws ec2 delete-security-group --group-id {group_id}"


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.debug(f"Security group delete attempt {state.attempt_number} failed: {exc}")


@inject
@dataclass
class TeardownOrchestrator:
    ec2: EC2ClientFactory
    waiter: ReadinessWaiter
    security_groups: SecurityGroupManager
    clock: Clock

    attempts: ClassVar[int] = SG_DELETE_ATTEMPTS
    interval: ClassVar[float] = SG_DELETE_INTERVAL

    async def destroy(
        self,
        instance_id: str,
        security_group_id: str | None = None,
    ) -> TeardownReport:
        """Terminate the instance and delete its security group.

        Raises:
            Ec2CliError: Termination or the termination wait failed. Security
                group problems never raise.
        """
        already_gone = not await self._terminate(instance_id)
        if not already_gone:
            await self.waiter.wait_for_terminated(instance_id)

        if security_group_id is None:
            return TeardownReport(instance_id, already_gone=already_gone)

        try:
            await self._delete_security_group(security_group_id)
        except Ec2CliError as e:
            if not is_not_found(e):
                warning = (
                    f"Could not delete security group {security_group_id} after "
                    f"{self.attempts} attempts: {e}. "
                    f"Clean up manually: {manual_cleanup_command(security_group_id)}"
                )
                logger.warning(warning)
                return TeardownReport(instance_id, already_gone=already_gone, warnings=(warning,))
            logger.debug(f"Security group {security_group_id} already deleted")

        return TeardownReport(instance_id, already_gone=already_gone, security_group_deleted=True)

    async def _terminate(self, instance_id: str) -> bool:
        """Issue terminate. Returns False when the instance no longer exists."""
        logger.info(f"Terminating {instance_id}")
        async with self.ec2() as ec2:
            try:
                await ec2.terminate_instances(InstanceIds=[instance_id])
            except ClientError as e:
                if is_not_found(e):
                    logger.info(f"{instance_id} not found, treating as already terminated")
                    return False
                translate_client_error(e, f"terminate {instance_id}")
        return True

    async def _delete_security_group(self, group_id: str) -> None:
        # The ENI is released some time after EC2 reports "terminated", so
        # DependencyViolation is expected for the first few attempts.
        @retry(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.interval),
            retry=retry_if_exception(lambda e: isinstance(e, Ec2CliError) and not is_not_found(e)),
            sleep=self.clock.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        async def _delete() -> None:
            await self.security_groups.delete(group_id)

        await _delete()


__all__ = ["TeardownOrchestrator", "TeardownReport", "manual_cleanup_command"]
