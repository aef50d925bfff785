"""Shared infrastructure resolution.

Resolves the network placement (VPC and subnet) and the per-machine IAM
role and instance profile that every launch depends on. Network resources
are only ever read; IAM resources are created on first use and reused
afterwards. Nothing here is deleted by ec2-cli.
"""

from __future__ import annotations

import hashlib
import json
import socket
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError
from injector import inject
from loguru import logger

from ec2cli.clients import EC2ClientFactory, IAMClientFactory
from ec2cli.clock import Clock
from ec2cli.config import Settings
from ec2cli.constants import (
    EC2_SERVICE_PRINCIPAL,
    LEGACY_INLINE_POLICY_NAME,
    RESOURCE_PREFIX,
    SSM_MANAGED_POLICY_ARN,
)
from ec2cli.exceptions import (
    ConfigurationError,
    NotFoundError,
    error_code,
    translate_client_error,
)
from ec2cli.tags import Tag, resource_tags

SHARED_RESOURCE_NAME = "infrastructure"
"""Name tag carried by the per-machine role and instance profile."""

ASSUME_ROLE_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"Service": EC2_SERVICE_PRINCIPAL},
            "Action": "sts:AssumeRole",
        }
    ],
}


def machine_fingerprint(hostname: str | None = None) -> str:
    """First 12 hex chars of sha256(hostname).

    Stable across processes and Python versions, unlike ``hash()``.
    """
    host = hostname if hostname is not None else socket.gethostname()
    return hashlib.sha256(host.encode()).hexdigest()[:12]


def role_name(fingerprint: str) -> str:
    return f"{RESOURCE_PREFIX}-role-{fingerprint}"


def instance_profile_name(fingerprint: str) -> str:
    return f"{RESOURCE_PREFIX}-profile-{fingerprint}"


@dataclass(frozen=True, slots=True)
class Infrastructure:
    """Resolved shared resources for one launch."""

    vpc_id: str
    subnet_id: str
    role_arn: str
    role_name: str
    instance_profile_arn: str
    instance_profile_name: str


def pick_subnet(subnets: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Deterministic subnet choice: default-for-AZ first, then by AZ and id."""
    ordered = sorted(
        subnets,
        key=lambda s: (
            not s.get("DefaultForAz", False),
            s.get("AvailabilityZone", ""),
            s.get("SubnetId", ""),
        ),
    )
    return ordered[0] if ordered else None


@inject
@dataclass
class InfrastructureResolver:
    """Idempotently resolves or creates the resources a launch needs.

    Non-not-found API errors abort immediately; there is no retry at this
    layer.
    """

    ec2: EC2ClientFactory
    iam: IAMClientFactory
    settings: Settings
    clock: Clock

    def __post_init__(self) -> None:
        self.fingerprint = machine_fingerprint()

    def _shared_tags(self) -> list[Tag]:
        return resource_tags(
            SHARED_RESOURCE_NAME, deployment=self.fingerprint, custom=self.settings.tags
        )

    async def resolve(self) -> Infrastructure:
        """Resolve network placement and IAM, creating IAM resources if needed.

        Raises:
            ConfigurationError: No default VPC, or the configured subnet is
                in a different VPC.
            NotFoundError: A configured VPC or subnet does not exist, or the
                VPC has no subnets.
            AwsApiError: Any other API failure.
        """
        async with self.ec2() as ec2:
            vpc_id = await self._resolve_vpc(ec2)
            subnet_id = await self._resolve_subnet(ec2, vpc_id)

        rname = role_name(self.fingerprint)
        pname = instance_profile_name(self.fingerprint)
        async with self.iam() as iam:
            role_arn, role_changed = await self._ensure_role(iam, rname)
            profile_arn, profile_changed = await self._ensure_instance_profile(iam, pname, rname)

        if role_changed or profile_changed:
            logger.info(
                f"Waiting {self.settings.propagation_delay:.0f}s for IAM changes to propagate"
            )
            await self.clock.sleep(self.settings.propagation_delay)

        return Infrastructure(
            vpc_id=vpc_id,
            subnet_id=subnet_id,
            role_arn=role_arn,
            role_name=rname,
            instance_profile_arn=profile_arn,
            instance_profile_name=pname,
        )

    # -------------------------------------------------------------------------
    # Network
    # -------------------------------------------------------------------------

    async def _resolve_vpc(self, ec2: Any) -> str:
        if self.settings.vpc_id is not None:
            try:
                resp = await ec2.describe_vpcs(VpcIds=[self.settings.vpc_id])
            except ClientError as e:
                translate_client_error(e, f"VPC {self.settings.vpc_id}")
            if not resp.get("Vpcs"):
                raise NotFoundError(f"VPC not found: {self.settings.vpc_id}")
            return self.settings.vpc_id

        try:
            resp = await ec2.describe_vpcs(Filters=[{"Name": "is-default", "Values": ["true"]}])
        except ClientError as e:
            translate_client_error(e, "describe default VPC")
        vpcs = resp.get("Vpcs", [])
        if not vpcs:
            raise ConfigurationError(
                "No default VPC found in this region. Set vpc_id and subnet_id in [settings]."
            )
        return vpcs[0]["VpcId"]

    async def _resolve_subnet(self, ec2: Any, vpc_id: str) -> str:
        configured = self.settings.subnet_id
        if configured is not None:
            try:
                resp = await ec2.describe_subnets(SubnetIds=[configured])
            except ClientError as e:
                translate_client_error(e, f"subnet {configured}")
            subnets = resp.get("Subnets", [])
            if not subnets:
                raise NotFoundError(f"Subnet not found: {configured}")
            actual = subnets[0].get("VpcId")
            if actual != vpc_id:
                raise ConfigurationError(
                    f"Subnet {configured} belongs to {actual}, not {vpc_id}"
                )
            return configured

        try:
            resp = await ec2.describe_subnets(Filters=[{"Name": "vpc-id", "Values": [vpc_id]}])
        except ClientError as e:
            translate_client_error(e, f"describe subnets of {vpc_id}")
        subnet = pick_subnet(resp.get("Subnets", []))
        if subnet is None:
            raise NotFoundError(f"No subnets found in {vpc_id}")
        logger.debug(f"Selected subnet {subnet['SubnetId']} in {subnet.get('AvailabilityZone')}")
        return subnet["SubnetId"]

    # -------------------------------------------------------------------------
    # IAM
    # -------------------------------------------------------------------------

    async def _ensure_role(self, iam: Any, name: str) -> tuple[str, bool]:
        """Return (role_arn, changed)."""
        try:
            resp = await iam.get_role(RoleName=name)
        except ClientError as e:
            if error_code(e) != "NoSuchEntity":
                translate_client_error(e, f"get role {name}")
            return await self._create_role(iam, name), True

        changed = await self._reconcile_role_policies(iam, name)
        return resp["Role"]["Arn"], changed

    async def _create_role(self, iam: Any, name: str) -> str:
        logger.info(f"Creating IAM role {name}")
        try:
            resp = await iam.create_role(
                RoleName=name,
                AssumeRolePolicyDocument=json.dumps(ASSUME_ROLE_POLICY),
                Description="Role for ec2-cli managed instances",
                Tags=self._shared_tags(),
            )
            arn = resp["Role"]["Arn"]
        except ClientError as e:
            if error_code(e) != "EntityAlreadyExists":
                translate_client_error(e, f"create role {name}")
            # Created concurrently by another invocation on this machine.
            logger.debug(f"Role {name} already exists, re-reading")
            try:
                arn = (await iam.get_role(RoleName=name))["Role"]["Arn"]
            except ClientError as e2:
                translate_client_error(e2, f"get role {name}")

        try:
            await iam.attach_role_policy(RoleName=name, PolicyArn=SSM_MANAGED_POLICY_ARN)
        except ClientError as e:
            translate_client_error(e, f"attach policy to {name}")
        return arn

    async def _reconcile_role_policies(self, iam: Any, name: str) -> bool:
        """Ensure the managed policy is attached and the legacy inline one is gone."""
        changed = False
        try:
            attached = await iam.list_attached_role_policies(RoleName=name)
            arns = {p["PolicyArn"] for p in attached.get("AttachedPolicies", [])}
            if SSM_MANAGED_POLICY_ARN not in arns:
                logger.info(f"Attaching SSM managed policy to {name}")
                await iam.attach_role_policy(RoleName=name, PolicyArn=SSM_MANAGED_POLICY_ARN)
                changed = True

            inline = await iam.list_role_policies(RoleName=name)
            if LEGACY_INLINE_POLICY_NAME in inline.get("PolicyNames", []):
                logger.info(f"Removing legacy inline policy from {name}")
                await iam.delete_role_policy(RoleName=name, PolicyName=LEGACY_INLINE_POLICY_NAME)
                changed = True
        except ClientError as e:
            translate_client_error(e, f"reconcile policies of {name}")
        return changed

    async def _ensure_instance_profile(
        self, iam: Any, name: str, role: str
    ) -> tuple[str, bool]:
        """Return (instance_profile_arn, changed)."""
        try:
            resp = await iam.get_instance_profile(InstanceProfileName=name)
        except ClientError as e:
            if error_code(e) != "NoSuchEntity":
                translate_client_error(e, f"get instance profile {name}")
            resp = await self._create_instance_profile(iam, name)

        profile = resp["InstanceProfile"]
        if profile.get("Roles"):
            return profile["Arn"], False

        logger.info(f"Adding role {role} to instance profile {name}")
        try:
            await iam.add_role_to_instance_profile(InstanceProfileName=name, RoleName=role)
        except ClientError as e:
            translate_client_error(e, f"add role to {name}")
        return profile["Arn"], True

    async def _create_instance_profile(self, iam: Any, name: str) -> dict[str, Any]:
        logger.info(f"Creating instance profile {name}")
        try:
            return await iam.create_instance_profile(
                InstanceProfileName=name,
                Tags=self._shared_tags(),
            )
        except ClientError as e:
            if error_code(e) != "EntityAlreadyExists":
                translate_client_error(e, f"create instance profile {name}")
        try:
            return await iam.get_instance_profile(InstanceProfileName=name)
        except ClientError as e:
            translate_client_error(e, f"get instance profile {name}")


__all__ = [
    "Infrastructure",
    "InfrastructureResolver",
    "instance_profile_name",
    "machine_fingerprint",
    "pick_subnet",
    "role_name",
]
