"""Readiness and termination polling.

Instance-state waits are driven by explicit transition tables: each
observed state maps to WAIT or DONE, and any state missing from the table
is fatal. ``NOT_FOUND`` is a pseudo-state for an instance the API does
not (yet, or any more) know about.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Final

from botocore.exceptions import ClientError
from injector import inject
from loguru import logger

from ec2cli.clients import EC2ClientFactory, SSMClientFactory
from ec2cli.clock import Clock
from ec2cli.config import Settings
from ec2cli.constants import (
    AGENT_POLL_INTERVAL,
    RUNNING_POLL_INTERVAL,
    TERMINATE_POLL_INTERVAL,
    InstanceState,
)
from ec2cli.exceptions import (
    TimeoutError,
    UnexpectedStateError,
    is_not_found,
    translate_client_error,
)


class Transition(Enum):
    WAIT = "wait"
    DONE = "done"


NOT_FOUND: Final = "not-found"

type TransitionTable = Mapping[str, Transition]

RUNNING_TRANSITIONS: Final[TransitionTable] = MappingProxyType({
    InstanceState.PENDING: Transition.WAIT,
    InstanceState.RUNNING: Transition.DONE,
    # EC2 is eventually consistent; a fresh instance may not be visible yet.
    NOT_FOUND: Transition.WAIT,
})

TERMINATION_TRANSITIONS: Final[TransitionTable] = MappingProxyType({
    InstanceState.TERMINATED: Transition.DONE,
    InstanceState.SHUTTING_DOWN: Transition.WAIT,
    InstanceState.STOPPING: Transition.WAIT,
    InstanceState.STOPPED: Transition.WAIT,
    InstanceState.RUNNING: Transition.WAIT,
    NOT_FOUND: Transition.DONE,
})


def transition(table: TransitionTable, instance_id: str, state: str, expected: str) -> Transition:
    """Look up the next step for an observed state.

    Raises:
        UnexpectedStateError: If the state is not in the table.
    """
    try:
        return table[state]
    except KeyError:
        raise UnexpectedStateError(instance_id, state, expected) from None


async def wait_for_ready[T](
    poll_fn: Callable[[], Awaitable[T | None]],
    ready_check: Callable[[T], bool],
    *,
    clock: Clock,
    timeout: float,
    interval: float,
    description: str = "resource",
) -> T:
    """Wait until poll_fn returns something that passes ready_check.

    Args:
        poll_fn: Async function that polls for the resource state. Returning
            None means "nothing to judge yet". Raising aborts the wait.
        ready_check: Function that returns True when resource is ready.
        clock: Time source; sleeps go through it.
        timeout: Maximum time to wait in seconds.
        interval: Time between polls in seconds.
        description: Description for error messages.

    Returns:
        The ready resource.

    Raises:
        TimeoutError: If timeout is exceeded.
    """
    start = clock.now()

    while True:
        result = await poll_fn()

        if result is not None and ready_check(result):
            return result

        elapsed = clock.now() - start
        if elapsed >= timeout:
            raise TimeoutError(f"Timeout waiting for {description} after {timeout:.1f}s")

        await clock.sleep(interval)


@inject
@dataclass
class ReadinessWaiter:
    """Polls EC2 and SSM until an instance is usable or gone."""

    ec2: EC2ClientFactory
    ssm: SSMClientFactory
    clock: Clock
    settings: Settings

    async def get_instance_state(self, instance_id: str) -> str:
        """Current state name, or NOT_FOUND."""
        async with self.ec2() as ec2:
            try:
                resp = await ec2.describe_instances(InstanceIds=[instance_id])
            except ClientError as e:
                if is_not_found(e):
                    return NOT_FOUND
                translate_client_error(e, f"describe instance {instance_id}")

        for reservation in resp.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return instance["State"]["Name"]
        return NOT_FOUND

    async def _wait_for_state(
        self,
        instance_id: str,
        table: TransitionTable,
        *,
        expected: str,
        timeout: float,
        interval: float,
    ) -> None:
        async def poll() -> Transition:
            state = await self.get_instance_state(instance_id)
            logger.debug(f"{instance_id} state: {state}")
            return transition(table, instance_id, state, expected)

        await wait_for_ready(
            poll,
            lambda t: t is Transition.DONE,
            clock=self.clock,
            timeout=timeout,
            interval=interval,
            description=f"{instance_id} to be {expected}",
        )

    async def wait_for_running(self, instance_id: str, timeout: float | None = None) -> None:
        """Wait until the instance is running.

        Raises:
            UnexpectedStateError: Any state other than pending or running.
            TimeoutError: Deadline exceeded.
        """
        logger.info(f"Waiting for {instance_id} to be running")
        await self._wait_for_state(
            instance_id,
            RUNNING_TRANSITIONS,
            expected="running",
            timeout=timeout if timeout is not None else self.settings.running_timeout,
            interval=RUNNING_POLL_INTERVAL,
        )

    async def wait_for_terminated(self, instance_id: str, timeout: float | None = None) -> None:
        """Wait until the instance is terminated or no longer known to EC2."""
        logger.info(f"Waiting for {instance_id} to terminate")
        await self._wait_for_state(
            instance_id,
            TERMINATION_TRANSITIONS,
            expected="terminated",
            timeout=timeout if timeout is not None else self.settings.terminate_timeout,
            interval=TERMINATE_POLL_INTERVAL,
        )

    async def wait_for_agent_ready(self, instance_id: str, timeout: float | None = None) -> None:
        """Wait until the SSM agent on the instance reports PingStatus Online."""
        logger.info(f"Waiting for SSM agent on {instance_id}")

        async def poll() -> str | None:
            async with self.ssm() as ssm:
                try:
                    resp = await ssm.describe_instance_information(
                        Filters=[{"Key": "InstanceIds", "Values": [instance_id]}]
                    )
                except ClientError as e:
                    translate_client_error(e, f"describe instance information {instance_id}")
            info = resp.get("InstanceInformationList", [])
            status = info[0].get("PingStatus") if info else None
            logger.debug(f"{instance_id} agent ping status: {status}")
            return status

        await wait_for_ready(
            poll,
            lambda status: status == "Online",
            clock=self.clock,
            timeout=timeout if timeout is not None else self.settings.agent_timeout,
            interval=AGENT_POLL_INTERVAL,
            description=f"SSM agent on {instance_id}",
        )


__all__ = [
    "NOT_FOUND",
    "RUNNING_TRANSITIONS",
    "TERMINATION_TRANSITIONS",
    "ReadinessWaiter",
    "Transition",
    "transition",
    "wait_for_ready",
]
