"""AMI resolution for EC2 instances.

Maps a profile's ``(os_family, architecture)`` selector to the newest public
image from a fixed owner and name pattern. An explicit AMI id short-circuits
the table entirely.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal

from botocore.exceptions import ClientError
from injector import inject
from loguru import logger

from ec2cli.clients import EC2ClientFactory
from ec2cli.exceptions import ImageNotFoundError, ValidationError, translate_client_error
from ec2cli.profile import AmiConfig

type PackageManager = Literal["apt", "dnf", "yum"]

CANONICAL_OWNER = "099720109477"
AMAZON_OWNER = "amazon"

DEFAULT_ROOT_DEVICE = "/dev/sda1"
DEFAULT_LOGIN_USER = "ubuntu"


@dataclass(frozen=True, slots=True)
class OsFamily:
    """One row of the AMI table.

    ``name_pattern`` contains an ``{arch}`` placeholder filled from
    ``arch_names``, since Canonical and Amazon spell x86_64 differently.
    """

    owner: str
    name_pattern: str
    arch_names: MappingProxyType[str, str]
    login_user: str
    package_manager: PackageManager
    root_device: str

    def name_filter(self, architecture: str) -> str:
        try:
            return self.name_pattern.format(arch=self.arch_names[architecture])
        except KeyError:
            raise ValidationError(
                f"Unsupported architecture: {architecture}. Valid: {', '.join(self.arch_names)}"
            ) from None


_UBUNTU_ARCH = MappingProxyType({"x86_64": "amd64", "arm64": "arm64"})
_AMAZON_ARCH = MappingProxyType({"x86_64": "x86_64", "arm64": "arm64"})

AMI_TABLE: MappingProxyType[str, OsFamily] = MappingProxyType({
    "ubuntu-22.04": OsFamily(
        owner=CANONICAL_OWNER,
        name_pattern="ubuntu/images/hvm-ssd/ubuntu-jammy-22.04-{arch}-server-*",
        arch_names=_UBUNTU_ARCH,
        login_user="ubuntu",
        package_manager="apt",
        root_device="/dev/sda1",
    ),
    "ubuntu-24.04": OsFamily(
        owner=CANONICAL_OWNER,
        name_pattern="ubuntu/images/hvm-ssd-gp3/ubuntu-noble-24.04-{arch}-server-*",
        arch_names=_UBUNTU_ARCH,
        login_user="ubuntu",
        package_manager="apt",
        root_device="/dev/sda1",
    ),
    "amazon-linux-2023": OsFamily(
        owner=AMAZON_OWNER,
        name_pattern="al2023-ami-2023.*-kernel-*-{arch}",
        arch_names=_AMAZON_ARCH,
        login_user="ec2-user",
        package_manager="dnf",
        root_device="/dev/xvda",
    ),
    "amazon-linux-2": OsFamily(
        owner=AMAZON_OWNER,
        name_pattern="amzn2-ami-hvm-*-{arch}-gp2",
        arch_names=_AMAZON_ARCH,
        login_user="ec2-user",
        package_manager="yum",
        root_device="/dev/xvda",
    ),
})

SUPPORTED_OS_FAMILIES: tuple[str, ...] = tuple(AMI_TABLE)


def os_family(name: str) -> OsFamily:
    """Look up a table row.

    Raises:
        ValidationError: If the family is not in the table.
    """
    try:
        return AMI_TABLE[name]
    except KeyError:
        raise ValidationError(
            f"Unknown AMI type: {name}. Valid: {', '.join(SUPPORTED_OS_FAMILIES)}"
        ) from None


def login_user_for(ami: AmiConfig) -> str:
    """Default login user for the selector.

    Explicit AMI ids with an unknown family fall back to ``ubuntu``.
    """
    family = AMI_TABLE.get(ami.os_family)
    return family.login_user if family else DEFAULT_LOGIN_USER


def package_manager_for(ami: AmiConfig) -> PackageManager:
    family = AMI_TABLE.get(ami.os_family)
    return family.package_manager if family else "apt"


def newest_image(images: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Return the image with the greatest CreationDate.

    Images with identical timestamps keep their API order; which one wins
    is unspecified.
    """
    ordered = sorted(images, key=lambda i: i.get("CreationDate", ""), reverse=True)
    return ordered[0] if ordered else None


@dataclass(frozen=True, slots=True)
class ResolvedImage:
    image_id: str
    root_device_name: str


@inject
@dataclass
class AmiResolver:
    """Resolves AMI selectors against the EC2 image catalog.

    Example:
        >>> resolver = injector.get(AmiResolver)
        >>> await resolver.lookup(AmiConfig(os_family="ubuntu-24.04"))
        'ami-0abc...'
    """

    ec2: EC2ClientFactory

    async def lookup(self, ami: AmiConfig) -> str:
        """Return the image id for the selector.

        Raises:
            ValidationError: Unknown os_family or architecture.
            ImageNotFoundError: No available image matches.
        """
        if ami.id is not None:
            return ami.id
        image = await self._find_newest(ami)
        return image["ImageId"]

    async def resolve(self, ami: AmiConfig) -> ResolvedImage:
        """Like lookup(), but also reports the image's root device name."""
        if ami.id is not None:
            return ResolvedImage(ami.id, await self._root_device_of(ami.id))

        image = await self._find_newest(ami)
        family = AMI_TABLE[ami.os_family]
        return ResolvedImage(
            image_id=image["ImageId"],
            root_device_name=image.get("RootDeviceName") or family.root_device,
        )

    async def _find_newest(self, ami: AmiConfig) -> dict[str, Any]:
        family = os_family(ami.os_family)
        name_filter = family.name_filter(ami.architecture)

        logger.debug(f"Looking up AMI owner={family.owner} name={name_filter}")
        async with self.ec2() as ec2:
            try:
                response = await ec2.describe_images(
                    Owners=[family.owner],
                    Filters=[
                        {"Name": "name", "Values": [name_filter]},
                        {"Name": "state", "Values": ["available"]},
                    ],
                )
            except ClientError as e:
                translate_client_error(e, "describe_images")

        image = newest_image(response.get("Images", []))
        if image is None:
            raise ImageNotFoundError(
                f"No AMI found matching {ami.os_family} for {ami.architecture}"
            )
        logger.info(f"Resolved {ami.os_family}/{ami.architecture} to {image['ImageId']}")
        return image

    async def _root_device_of(self, image_id: str) -> str:
        async with self.ec2() as ec2:
            try:
                response = await ec2.describe_images(ImageIds=[image_id])
            except ClientError as e:
                translate_client_error(e, f"describe_images {image_id}")

        images = response.get("Images", [])
        if not images:
            raise ImageNotFoundError(f"AMI {image_id} not found")
        return images[0].get("RootDeviceName") or DEFAULT_ROOT_DEVICE


__all__ = [
    "AMI_TABLE",
    "SUPPORTED_OS_FAMILIES",
    "AmiResolver",
    "OsFamily",
    "ResolvedImage",
    "login_user_for",
    "newest_image",
    "os_family",
    "package_manager_for",
]
