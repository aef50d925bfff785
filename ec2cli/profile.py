"""Launch profiles.

A profile is a named, immutable description of what to launch: instance
size, machine image selector, root storage, packages, toolchain and
environment. Profiles are loaded from TOML by ec2cli.config; the built-in
default is used when none is configured.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal

from ec2cli.exceptions import ConfigurationError

type Architecture = Literal["x86_64", "arm64"]
type VolumeType = Literal["gp2", "gp3", "io1", "io2", "st1", "sc1"]
type ToolchainChannel = Literal["stable", "beta", "nightly"]

VOLUME_TYPES: tuple[str, ...] = ("gp2", "gp3", "io1", "io2", "st1", "sc1")
ARCHITECTURES: tuple[str, ...] = ("x86_64", "arm64")
TOOLCHAIN_CHANNELS: tuple[str, ...] = ("stable", "beta", "nightly")

MIN_VOLUME_GB = 8
MAX_VOLUME_GB = 16384

_PROFILE_NAME = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(frozen=True, slots=True)
class AmiConfig:
    """Machine image selector.

    Args:
        os_family: Key into the AMI table (e.g. "ubuntu-24.04").
        architecture: CPU architecture.
        id: Explicit AMI id. When set, table lookup is skipped entirely.
    """

    os_family: str = "ubuntu-24.04"
    architecture: Architecture = "x86_64"
    id: str | None = None


@dataclass(frozen=True, slots=True)
class RootVolume:
    size_gb: int = 30
    volume_type: VolumeType = "gp3"
    iops: int | None = 3000
    throughput: int | None = 125


@dataclass(frozen=True, slots=True)
class Toolchain:
    """Rust toolchain installed through rustup."""

    enabled: bool = True
    channel: ToolchainChannel = "stable"
    components: tuple[str, ...] = ("rustfmt", "clippy")
    packages: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Profile:
    """Immutable launch profile.

    Example:
        >>> profile = Profile(
        ...     name="big",
        ...     instance_type="m7i.2xlarge",
        ...     root_volume=RootVolume(size_gb=100),
        ...     system_packages=("build-essential", "git"),
        ... )
    """

    name: str = "default"
    instance_type: str = "t3.large"
    fallback_types: tuple[str, ...] = ("t3.medium",)
    ami: AmiConfig = field(default_factory=AmiConfig)
    root_volume: RootVolume = field(default_factory=RootVolume)
    system_packages: tuple[str, ...] = ("build-essential", "libssl-dev", "pkg-config", "git")
    toolchain: Toolchain = field(default_factory=Toolchain)
    environment: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def validate(self) -> Profile:
        """Check field values; returns self for chaining.

        Raises:
            ConfigurationError: On the first invalid field.
        """
        from ec2cli.ami import SUPPORTED_OS_FAMILIES

        if not self.name:
            raise ConfigurationError("Profile name cannot be empty")
        if not self.instance_type:
            raise ConfigurationError("Instance type cannot be empty")

        size = self.root_volume.size_gb
        if not MIN_VOLUME_GB <= size <= MAX_VOLUME_GB:
            raise ConfigurationError(
                f"Root volume size must be between {MIN_VOLUME_GB} and {MAX_VOLUME_GB} GB, got {size}"
            )
        if self.root_volume.volume_type not in VOLUME_TYPES:
            raise ConfigurationError(
                f"Invalid volume type: {self.root_volume.volume_type}. Valid: {', '.join(VOLUME_TYPES)}"
            )
        if self.ami.architecture not in ARCHITECTURES:
            raise ConfigurationError(
                f"Invalid architecture: {self.ami.architecture}. Valid: {', '.join(ARCHITECTURES)}"
            )
        if self.ami.id is None and self.ami.os_family not in SUPPORTED_OS_FAMILIES:
            raise ConfigurationError(
                f"Invalid AMI type: {self.ami.os_family}. Valid: {', '.join(SUPPORTED_OS_FAMILIES)}"
            )
        if self.toolchain.enabled and self.toolchain.channel not in TOOLCHAIN_CHANNELS:
            raise ConfigurationError(
                f"Invalid toolchain channel: {self.toolchain.channel}. Valid: {', '.join(TOOLCHAIN_CHANNELS)}"
            )
        return self

    @classmethod
    def from_dict(cls, name: str, raw: Mapping[str, Any]) -> Profile:
        """Build a profile from a ``[profiles.<name>]`` TOML table.

        Layout::

            [profiles.big]
            instance_type = "m7i.2xlarge"
            fallback_types = ["m7i.xlarge"]
            system_packages = ["git", "jq"]

            [profiles.big.ami]
            os_family = "ubuntu-22.04"
            architecture = "arm64"

            [profiles.big.root_volume]
            size_gb = 100

            [profiles.big.toolchain]
            channel = "nightly"
            packages = ["cargo-watch"]

            [profiles.big.environment]
            RUST_LOG = "debug"
        """
        validate_profile_name(name)
        raw = dict(raw)
        try:
            ami = AmiConfig(**raw.pop("ami", {}))
            root_volume = RootVolume(**raw.pop("root_volume", {}))

            raw_toolchain = dict(raw.pop("toolchain", {}))
            for key in ("components", "packages"):
                if key in raw_toolchain:
                    raw_toolchain[key] = tuple(raw_toolchain[key])
            toolchain = Toolchain(**raw_toolchain)

            environment = MappingProxyType({
                str(k): str(v) for k, v in raw.pop("environment", {}).items()
            })
            for key in ("fallback_types", "system_packages"):
                if key in raw:
                    raw[key] = tuple(raw[key])

            return cls(
                name=name,
                ami=ami,
                root_volume=root_volume,
                toolchain=toolchain,
                environment=environment,
                **raw,
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid profile '{name}': {e}") from e


def validate_profile_name(name: str) -> str:
    """Reject profile names that could escape a config lookup."""
    if not name:
        raise ConfigurationError("Profile name cannot be empty")
    if not _PROFILE_NAME.fullmatch(name):
        raise ConfigurationError(
            f"Invalid profile name '{name}': only alphanumeric, dash, and underscore allowed"
        )
    return name


DEFAULT_PROFILE = Profile()


__all__ = [
    "DEFAULT_PROFILE",
    "AmiConfig",
    "Architecture",
    "Profile",
    "RootVolume",
    "Toolchain",
    "validate_profile_name",
]
