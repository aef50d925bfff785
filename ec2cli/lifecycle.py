"""Instance lifecycle orchestration.

``up`` validates everything first, then resolves shared infrastructure,
creates the instance's security group, launches and waits until the
instance is reachable through Session Manager. ``destroy`` reverses the
per-instance part and drops the local record.

Example:
    >>> lifecycle = create_lifecycle(settings)
    >>> record = await lifecycle.up(profile, "dev", project_name="my-app")
    >>> store.save(record)
    >>> ...
    >>> report = await lifecycle.destroy("dev", store)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from injector import Injector, inject
from loguru import logger

from ec2cli.ami import login_user_for, package_manager_for
from ec2cli.bootstrap import BootstrapScriptBuilder, VcsIdentity
from ec2cli.clients import Ec2CliModule
from ec2cli.config import Settings
from ec2cli.exceptions import ConfigurationError, Ec2CliError, InstanceNotFoundError
from ec2cli.infra import InfrastructureResolver
from ec2cli.instances import InstanceFinder
from ec2cli.launcher import InstanceLauncher
from ec2cli.profile import Profile
from ec2cli.security_group import SecurityGroupManager
from ec2cli.state import InstanceRecord, InstanceStore
from ec2cli.teardown import TeardownOrchestrator, TeardownReport
from ec2cli.validation import validate_instance_name
from ec2cli.waiter import ReadinessWaiter


@inject
@dataclass
class Lifecycle:
    settings: Settings
    infrastructure: InfrastructureResolver
    security_groups: SecurityGroupManager
    builder: BootstrapScriptBuilder
    launcher: InstanceLauncher
    waiter: ReadinessWaiter
    teardown: TeardownOrchestrator
    finder: InstanceFinder

    async def up(
        self,
        profile: Profile,
        name: str,
        *,
        project_name: str | None = None,
        ssh_public_key: str | None = None,
        vcs_identity: VcsIdentity | None = None,
    ) -> InstanceRecord:
        """Launch a named instance and wait until its SSM agent is online.

        Validation (profile, name, every bootstrap input) happens before any
        AWS resource is created.

        Raises:
            ValidationError / ConfigurationError: Bad input, or the name is
                already in use.
            Ec2CliError: Any later failure. If the launch itself failed the
                security group was already rolled back; if a wait failed the
                instance is left running and its id is logged.
        """
        validate_instance_name(name)
        profile.validate()
        login_user = login_user_for(profile.ami)
        script = self.builder.build(
            profile,
            login_user,
            project_name=project_name,
            ssh_public_key=ssh_public_key,
            vcs_identity=vcs_identity,
            package_manager=package_manager_for(profile.ami),
        )

        existing = await self.finder.find_instance_by_name(name)
        if existing is not None:
            raise ConfigurationError(
                f"Instance '{name}' already exists ({existing.instance_id}, {existing.state})"
            )

        infra = await self.infrastructure.resolve()
        group_id = await self.security_groups.create(infra.vpc_id, name)
        instance_id = await self.launcher.launch(infra, group_id, profile, name, script)

        try:
            await self.waiter.wait_for_running(instance_id)
            await self.waiter.wait_for_agent_ready(instance_id)
        except Ec2CliError:
            logger.error(
                f"Instance {instance_id} launched but did not become ready; "
                f"security group {group_id} is still attached"
            )
            raise

        logger.info(f"Instance {name} ({instance_id}) is ready")
        return InstanceRecord(
            name=name,
            instance_id=instance_id,
            profile_name=profile.name,
            region=self.settings.region,
            login_user=login_user,
            security_group_id=group_id,
            created_at=datetime.now(UTC),
            project_name=project_name,
        )

    async def destroy(self, name: str, store: InstanceStore) -> TeardownReport:
        """Tear down a recorded instance and remove its record.

        The record is removed once the instance is confirmed gone, even when
        security group cleanup only produced warnings.

        Raises:
            InstanceNotFoundError: No record for ``name``.
        """
        record = store.get(name)
        if record is None:
            raise InstanceNotFoundError(name)

        report = await self.teardown.destroy(record.instance_id, record.security_group_id)
        store.remove(name)
        logger.info(f"Instance {name} ({record.instance_id}) destroyed")
        return report


def create_lifecycle(settings: Settings) -> Lifecycle:
    """Wire a Lifecycle with real AWS clients for ``settings``."""
    return Injector([Ec2CliModule(settings)]).get(Lifecycle)


__all__ = ["Lifecycle", "create_lifecycle"]
