"""Per-instance security groups.

Each instance gets its own group, created right before launch and deleted
right after confirmed termination. Groups never carry ingress rules:
access goes through Session Manager, so the default egress rule is all an
instance needs.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from botocore.exceptions import ClientError
from injector import inject
from loguru import logger

from ec2cli.clients import EC2ClientFactory
from ec2cli.config import Settings
from ec2cli.constants import RESOURCE_PREFIX
from ec2cli.exceptions import translate_client_error
from ec2cli.infra import machine_fingerprint
from ec2cli.tags import resource_tags, tag_specification


def security_group_name(instance_name: str) -> str:
    """``ec2-cli-<name>-<8 hex>``; the suffix avoids collisions on re-use of a name."""
    return f"{RESOURCE_PREFIX}-{instance_name}-{uuid.uuid4().hex[:8]}"


@inject
@dataclass
class SecurityGroupManager:
    ec2: EC2ClientFactory
    settings: Settings

    def __post_init__(self) -> None:
        self.deployment = machine_fingerprint()

    async def create(self, vpc_id: str, instance_name: str) -> str:
        """Create an ingress-free group for one instance and return its id."""
        name = security_group_name(instance_name)
        async with self.ec2() as ec2:
            try:
                resp = await ec2.create_security_group(
                    GroupName=name,
                    Description=f"ec2-cli security group for {instance_name}",
                    VpcId=vpc_id,
                    TagSpecifications=[
                        tag_specification(
                            "security-group",
                            resource_tags(
                                instance_name,
                                deployment=self.deployment,
                                custom=self.settings.tags,
                            ),
                        )
                    ],
                )
            except ClientError as e:
                translate_client_error(e, f"create security group {name}")

        group_id = resp["GroupId"]
        logger.info(f"Created security group {group_id} ({name})")
        return group_id

    async def delete(self, group_id: str) -> None:
        """Delete a group. Single attempt; errors propagate translated."""
        async with self.ec2() as ec2:
            try:
                await ec2.delete_security_group(GroupId=group_id)
            except ClientError as e:
                translate_client_error(e, f"delete security group {group_id}")
        logger.info(f"Deleted security group {group_id}")


__all__ = ["SecurityGroupManager", "security_group_name"]
