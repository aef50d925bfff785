"""TOML-based settings and profile configuration.

Loads ~/.ec2-cli/config.toml (global) and ec2-cli.toml (project), merges
them, and resolves them into an immutable Settings value and named
Profiles. The entry point resolves configuration exactly once and passes
it down; nothing below it reads configuration files.

Example ``ec2-cli.toml``::

    [settings]
    region = "eu-west-1"
    subnet_id = "subnet-0abc12345def67890"

    [tags]
    Username = "alice"
    CostCenter = "research"

    [profiles.default]
    instance_type = "t3.xlarge"
"""

from __future__ import annotations

import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from ec2cli import constants
from ec2cli.constants import (
    MAX_TAG_KEY_LENGTH,
    MAX_TAG_VALUE_LENGTH,
    RESERVED_TAG_PREFIX,
)
from ec2cli.exceptions import ConfigurationError
from ec2cli.profile import DEFAULT_PROFILE, Profile, validate_profile_name

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".ec2-cli" / "config.toml"
PROJECT_CONFIG_NAME = "ec2-cli.toml"

_REGION = re.compile(r"[a-z]{2}(-gov)?-[a-z]+-\d+")
_VPC_ID = re.compile(r"vpc-[0-9a-f]{8,17}")
_SUBNET_ID = re.compile(r"subnet-[0-9a-f]{8,17}")


# =============================================================================
# Settings
# =============================================================================


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved, validated global settings.

    Args:
        region: AWS region. None uses the SDK default chain.
        vpc_id: VPC to launch into. None uses the account's default VPC.
        subnet_id: Subnet to launch into. Must belong to the VPC.
        tags: Operator-supplied tags applied to every created resource.
        running_timeout: Seconds to wait for the instance to run.
        agent_timeout: Seconds to wait for the SSM agent to come online.
        terminate_timeout: Seconds to wait for termination.
        propagation_delay: Seconds to wait after IAM changes.
    """

    region: str | None = None
    vpc_id: str | None = None
    subnet_id: str | None = None
    tags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    running_timeout: float = constants.RUNNING_TIMEOUT
    agent_timeout: float = constants.AGENT_TIMEOUT
    terminate_timeout: float = constants.TERMINATE_TIMEOUT
    propagation_delay: float = constants.PROPAGATION_DELAY

    def validate(self) -> Settings:
        if self.region is not None:
            validate_region(self.region)
        if self.vpc_id is not None and not _VPC_ID.fullmatch(self.vpc_id):
            raise ConfigurationError(
                f"Invalid VPC ID format: '{self.vpc_id}'. Expected format like 'vpc-12345678'"
            )
        if self.subnet_id is not None and not _SUBNET_ID.fullmatch(self.subnet_id):
            raise ConfigurationError(
                f"Invalid subnet ID format: '{self.subnet_id}'. Expected format like 'subnet-12345678'"
            )
        for key, value in self.tags.items():
            validate_tag_key(key)
            validate_tag_value(value)
        for name in ("running_timeout", "agent_timeout", "terminate_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.propagation_delay < 0:
            raise ConfigurationError("propagation_delay cannot be negative")
        return self


def validate_region(region: str) -> str:
    if not _REGION.fullmatch(region):
        raise ConfigurationError(
            f"Invalid AWS region format: '{region}'. Expected format like 'us-east-1'"
        )
    return region


def _printable_ascii(s: str) -> bool:
    return all(" " <= c <= "~" for c in s)


def validate_tag_key(key: str) -> str:
    if not key:
        raise ConfigurationError("Tag key cannot be empty")
    if len(key) > MAX_TAG_KEY_LENGTH:
        raise ConfigurationError(f"Tag key cannot exceed {MAX_TAG_KEY_LENGTH} characters")
    if key.startswith(RESERVED_TAG_PREFIX):
        raise ConfigurationError(
            f"Tag key cannot start with '{RESERVED_TAG_PREFIX}' (reserved prefix)"
        )
    if not _printable_ascii(key):
        raise ConfigurationError("Tag key must contain only ASCII printable characters")
    return key


def validate_tag_value(value: str) -> str:
    if len(value) > MAX_TAG_VALUE_LENGTH:
        raise ConfigurationError(f"Tag value cannot exceed {MAX_TAG_VALUE_LENGTH} characters")
    if not _printable_ascii(value):
        raise ConfigurationError("Tag value must contain only ASCII printable characters")
    return value


# =============================================================================
# Loading
# =============================================================================


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("settings", {})
    merged.setdefault("tags", {})
    merged.setdefault("profiles", {})
    return merged


def resolve_settings(config: RawConfig) -> Settings:
    """Build validated Settings from a merged raw config."""
    raw = dict(config.get("settings", {}))
    tags = MappingProxyType({str(k): str(v) for k, v in config.get("tags", {}).items()})
    try:
        settings = Settings(tags=tags, **raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid [settings] table: {e}") from e
    return settings.validate()


def resolve_profile(config: RawConfig, name: str = "default") -> Profile:
    """Build and validate the named profile.

    Raises:
        ConfigurationError: If the profile is missing (and not "default")
            or invalid.
    """
    validate_profile_name(name)
    profiles = config.get("profiles", {})
    if name in profiles:
        return Profile.from_dict(name, profiles[name]).validate()
    if name == DEFAULT_PROFILE.name:
        return DEFAULT_PROFILE
    raise ConfigurationError(
        f"Profile '{name}' not found. Available: {', '.join(profiles) or 'default'}"
    )


__all__ = [
    "GLOBAL_CONFIG_PATH",
    "PROJECT_CONFIG_NAME",
    "Settings",
    "load_config",
    "resolve_profile",
    "resolve_settings",
    "validate_region",
    "validate_tag_key",
    "validate_tag_value",
]
