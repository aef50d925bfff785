"""ec2-cli - Ephemeral EC2 development instances over Session Manager.

Example:

    from ec2cli import create_lifecycle, load_config, resolve_profile, resolve_settings

    config = load_config()
    settings = resolve_settings(config)
    lifecycle = create_lifecycle(settings)

    record = await lifecycle.up(
        resolve_profile(config, "default"),
        "dev",
        project_name="my-app",
        ssh_public_key=load_public_key(),
    )
    store.save(record)

    report = await lifecycle.destroy("dev", store)
"""

# Configuration
from ec2cli.config import (
    Settings,
    load_config,
    resolve_profile,
    resolve_settings,
)

# Errors
from ec2cli.exceptions import (
    AwsApiError,
    ConfigurationError,
    Ec2CliError,
    ImageNotFoundError,
    InstanceNotFoundError,
    NotFoundError,
    SessionBrokerError,
    TimeoutError,
    TransientAPIError,
    UnexpectedStateError,
    ValidationError,
)

# Helpers
from ec2cli.keys import load_public_key

# Lifecycle
from ec2cli.lifecycle import Lifecycle, create_lifecycle

# Logging
from ec2cli.logging import LogConfig, setup_logging, teardown_logging

# Profiles
from ec2cli.profile import DEFAULT_PROFILE, AmiConfig, Profile, RootVolume, Toolchain
from ec2cli.session import SessionBroker
from ec2cli.state import InstanceRecord, InstanceStore
from ec2cli.teardown import TeardownReport
from ec2cli.vcs import find_vcs_identity

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_PROFILE",
    "AmiConfig",
    "AwsApiError",
    "ConfigurationError",
    "Ec2CliError",
    "ImageNotFoundError",
    "InstanceNotFoundError",
    "InstanceRecord",
    "InstanceStore",
    "Lifecycle",
    "LogConfig",
    "NotFoundError",
    "Profile",
    "RootVolume",
    "SessionBroker",
    "SessionBrokerError",
    "Settings",
    "TeardownReport",
    "TimeoutError",
    "Toolchain",
    "TransientAPIError",
    "UnexpectedStateError",
    "ValidationError",
    "create_lifecycle",
    "find_vcs_identity",
    "load_config",
    "load_public_key",
    "resolve_profile",
    "resolve_settings",
    "setup_logging",
    "teardown_logging",
]
