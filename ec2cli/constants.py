"""Centralized constants and enums for ec2-cli.

All magic strings, paths, and configuration constants are defined here
to ensure consistency and enable type-safe usage throughout the codebase.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# AWS Resource Tags
# =============================================================================


class Ec2CliTag(StrEnum):
    """AWS resource tag keys used by ec2-cli."""

    MANAGED = "ec2-cli:managed"
    NAME = "ec2-cli:name"
    DEPLOYMENT = "ec2-cli:deployment"
    AWS_NAME = "Name"


MANAGED_TAG_VALUE: Final = "true"
RESERVED_TAG_PREFIX: Final = "aws:"
RESOURCE_PREFIX: Final = "ec2-cli"


# =============================================================================
# EC2 Instance States
# =============================================================================


class InstanceState(StrEnum):
    """EC2 instance state names."""

    PENDING = "pending"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"
    STOPPING = "stopping"
    STOPPED = "stopped"


ACTIVE_STATES: Final = (
    InstanceState.PENDING,
    InstanceState.RUNNING,
    InstanceState.STOPPING,
    InstanceState.STOPPED,
)


# =============================================================================
# IAM
# =============================================================================

SSM_MANAGED_POLICY_ARN: Final = "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"
LEGACY_INLINE_POLICY_NAME: Final = "ec2-cli-ssm-policy"
EC2_SERVICE_PRINCIPAL: Final = "ec2.amazonaws.com"


# =============================================================================
# Instance Filesystem Paths
# =============================================================================

INIT_LOG_PATH: Final = "/var/log/ec2-cli-init.log"
READY_MARKER: Final = ".ec2-cli-ready"
GIT_READY_MARKER: Final = ".ec2-cli-git-ready"
MOTD_SCRIPT_PATH: Final = "/etc/update-motd.d/99-ec2-cli"


# =============================================================================
# Timeouts and Intervals (in seconds)
# =============================================================================

RUNNING_TIMEOUT: Final = 300
AGENT_TIMEOUT: Final = 600
TERMINATE_TIMEOUT: Final = 300
RUNNING_POLL_INTERVAL: Final = 5.0
AGENT_POLL_INTERVAL: Final = 10.0
TERMINATE_POLL_INTERVAL: Final = 5.0
PROPAGATION_DELAY: Final = 10.0

SG_DELETE_ATTEMPTS: Final = 6
SG_DELETE_INTERVAL: Final = 10.0


# =============================================================================
# Validation Limits
# =============================================================================

MAX_SHELL_VALUE_LENGTH: Final = 256
MAX_PROJECT_NAME_LENGTH: Final = 64
MAX_USERNAME_LENGTH: Final = 32
MAX_TAG_KEY_LENGTH: Final = 128
MAX_TAG_VALUE_LENGTH: Final = 256
MIN_SSH_KEY_MATERIAL_LENGTH: Final = 50
