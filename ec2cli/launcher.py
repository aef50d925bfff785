"""Instance launch with security hardening.

Every launch request forces an encrypted root volume and IMDSv2 with a hop
limit of 1, whatever the profile says. A failed launch deletes the
per-instance security group created for it; shared infrastructure is never
rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

from botocore.exceptions import ClientError
from injector import inject
from loguru import logger

from ec2cli.ami import AmiResolver, ResolvedImage
from ec2cli.bootstrap import BootstrapScript
from ec2cli.clients import EC2ClientFactory
from ec2cli.config import Settings
from ec2cli.exceptions import AwsApiError, error_code, translate_client_error
from ec2cli.infra import Infrastructure, machine_fingerprint
from ec2cli.profile import Profile, RootVolume
from ec2cli.security_group import SecurityGroupManager
from ec2cli.tags import resource_tags, tag_specification

CAPACITY_ERROR_CODES: Final = frozenset({"InsufficientInstanceCapacity", "Unsupported"})
IOPS_VOLUME_TYPES: Final = frozenset({"gp3", "io1", "io2"})

METADATA_OPTIONS: Final = {
    "HttpTokens": "required",
    "HttpPutResponseHopLimit": 1,
    "HttpEndpoint": "enabled",
}


def block_device_mapping(device_name: str, volume: RootVolume) -> dict[str, Any]:
    """Root EBS mapping. ``Encrypted`` is always True."""
    ebs: dict[str, Any] = {
        "VolumeSize": volume.size_gb,
        "VolumeType": volume.volume_type,
        "DeleteOnTermination": True,
        "Encrypted": True,
    }
    if volume.iops is not None and volume.volume_type in IOPS_VOLUME_TYPES:
        ebs["Iops"] = volume.iops
    if volume.throughput is not None and volume.volume_type == "gp3":
        ebs["Throughput"] = volume.throughput
    return {"DeviceName": device_name, "Ebs": ebs}


def build_launch_request(
    *,
    image: ResolvedImage,
    instance_type: str,
    infrastructure: Infrastructure,
    security_group_id: str,
    profile: Profile,
    bootstrap_script: BootstrapScript,
    tags: list[dict[str, str]],
) -> dict[str, Any]:
    """Assemble the single ``run_instances`` request for one launch."""
    return {
        "ImageId": image.image_id,
        "InstanceType": instance_type,
        "MinCount": 1,
        "MaxCount": 1,
        "SubnetId": infrastructure.subnet_id,
        "SecurityGroupIds": [security_group_id],
        "IamInstanceProfile": {"Arn": infrastructure.instance_profile_arn},
        "BlockDeviceMappings": [block_device_mapping(image.root_device_name, profile.root_volume)],
        "MetadataOptions": dict(METADATA_OPTIONS),
        # boto3 base64-encodes UserData for run_instances.
        "UserData": bootstrap_script.text,
        "TagSpecifications": [
            tag_specification("instance", tags),
            tag_specification("volume", tags),
        ],
    }


@inject
@dataclass
class InstanceLauncher:
    ec2: EC2ClientFactory
    ami: AmiResolver
    security_groups: SecurityGroupManager
    settings: Settings

    def __post_init__(self) -> None:
        self.deployment = machine_fingerprint()

    async def launch(
        self,
        infrastructure: Infrastructure,
        security_group_id: str,
        profile: Profile,
        name: str,
        bootstrap_script: BootstrapScript,
    ) -> str:
        """Launch one instance and return its id.

        The profile's instance type is tried first, then each fallback type
        while the API reports a capacity or support problem.

        Raises:
            Ec2CliError: Whatever failed. The security group has already
                been deleted (best effort) by then.
        """
        try:
            image = await self.ami.resolve(profile.ami)
            tags = resource_tags(name, deployment=self.deployment, custom=self.settings.tags)
            return await self._run_with_fallback(
                image, infrastructure, security_group_id, profile, bootstrap_script, tags
            )
        except Exception:
            await self._rollback(security_group_id)
            raise

    async def _run_with_fallback(
        self,
        image: ResolvedImage,
        infrastructure: Infrastructure,
        security_group_id: str,
        profile: Profile,
        bootstrap_script: BootstrapScript,
        tags: list[dict[str, str]],
    ) -> str:
        candidates = (profile.instance_type, *profile.fallback_types)
        last = len(candidates) - 1

        async with self.ec2() as ec2:
            for index, instance_type in enumerate(candidates):
                request = build_launch_request(
                    image=image,
                    instance_type=instance_type,
                    infrastructure=infrastructure,
                    security_group_id=security_group_id,
                    profile=profile,
                    bootstrap_script=bootstrap_script,
                    tags=tags,
                )
                logger.info(f"Launching {instance_type} from {image.image_id}")
                try:
                    resp = await ec2.run_instances(**request)
                except ClientError as e:
                    if error_code(e) not in CAPACITY_ERROR_CODES:
                        translate_client_error(e, f"run_instances {instance_type}")
                    if index == last:
                        translate_client_error(e, f"run_instances (tried {', '.join(candidates)})")
                    logger.warning(f"{instance_type} unavailable ({error_code(e)}), trying next type")
                    continue

                instances = resp.get("Instances", [])
                if not instances:
                    raise AwsApiError("run_instances returned no instance", operation="RunInstances")
                instance_id = instances[0]["InstanceId"]
                logger.info(f"Launched {instance_id} ({instance_type})")
                return instance_id

        raise AwsApiError("No instance type to launch", operation="RunInstances")

    async def _rollback(self, security_group_id: str) -> None:
        logger.info(f"Launch failed, deleting security group {security_group_id}")
        try:
            await self.security_groups.delete(security_group_id)
        except Exception as e:
            logger.warning(
                f"Failed to delete security group {security_group_id} during rollback: {e}. "
                f"Run: aws ec2 delete-security-group --group-id {security_group_id}"
            )


__all__ = [
    "METADATA_OPTIONS",
    "InstanceLauncher",
    "block_device_mapping",
    "build_launch_request",
]
