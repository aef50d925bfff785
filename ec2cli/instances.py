"""Lookup of ec2-cli managed instances by tag."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from botocore.exceptions import ClientError
from injector import inject

from ec2cli.clients import EC2ClientFactory
from ec2cli.constants import ACTIVE_STATES, Ec2CliTag
from ec2cli.exceptions import translate_client_error
from ec2cli.tags import managed_filters, tag_value


@dataclass(frozen=True, slots=True)
class ManagedInstance:
    instance_id: str
    name: str
    state: str
    instance_type: str
    launch_time: datetime | None = None
    private_ip: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ManagedInstance:
        return cls(
            instance_id=data["InstanceId"],
            name=tag_value(data.get("Tags"), Ec2CliTag.NAME) or "",
            state=data["State"]["Name"],
            instance_type=data.get("InstanceType", ""),
            launch_time=data.get("LaunchTime"),
            private_ip=data.get("PrivateIpAddress"),
        )


@inject
@dataclass
class InstanceFinder:
    ec2: EC2ClientFactory

    async def _describe(self, filters: list[dict[str, Any]]) -> list[ManagedInstance]:
        found: list[ManagedInstance] = []
        async with self.ec2() as ec2:
            paginator = ec2.get_paginator("describe_instances")
            try:
                async for page in paginator.paginate(Filters=filters):
                    for reservation in page.get("Reservations", []):
                        found.extend(ManagedInstance.from_api(i) for i in reservation.get("Instances", []))
            except ClientError as e:
                translate_client_error(e, "describe_instances")
        return found

    async def find_instance_by_name(self, name: str) -> ManagedInstance | None:
        """Return the non-terminated managed instance with this name, if any."""
        filters = [
            *managed_filters(name),
            {"Name": "instance-state-name", "Values": [str(s) for s in ACTIVE_STATES]},
        ]
        instances = await self._describe(filters)
        return instances[0] if instances else None

    async def list_managed_instances(self, include_terminated: bool = False) -> list[ManagedInstance]:
        filters = managed_filters()
        if not include_terminated:
            filters.append({"Name": "instance-state-name", "Values": [str(s) for s in ACTIVE_STATES]})
        instances = await self._describe(filters)
        return sorted(instances, key=lambda i: (i.name, i.instance_id))


__all__ = ["InstanceFinder", "ManagedInstance"]
