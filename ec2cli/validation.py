"""Shell-safety validation for user-controlled values.

Everything interpolated into the bootstrap script (which runs as root on
first boot) passes through one of these checks first. Each validator
returns the value unchanged or raises ValidationError.
"""

from __future__ import annotations

import re
from typing import Final

from ec2cli.constants import (
    MAX_PROJECT_NAME_LENGTH,
    MAX_SHELL_VALUE_LENGTH,
    MAX_USERNAME_LENGTH,
    MIN_SSH_KEY_MATERIAL_LENGTH,
)
from ec2cli.exceptions import ValidationError

SHELL_METACHARACTERS: Final = frozenset(";&|$`(){}[]<>'\"\\\n\r!#*?~")

_ENV_KEY = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_PROJECT_NAME = re.compile(r"[A-Za-z0-9._-]+")
_USERNAME = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")
_INSTANCE_NAME = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")
_BASE64 = re.compile(r"[A-Za-z0-9+/=]+")

SSH_KEY_PREFIXES: Final = ("ssh-rsa ", "ssh-ed25519 ", "ecdsa-sha2-nistp")


def validate_shell_safe(
    value: str,
    context: str,
    *,
    max_length: int = MAX_SHELL_VALUE_LENGTH,
) -> str:
    """Reject empty, oversized, or metacharacter-bearing values.

    Args:
        value: The string to check.
        context: Human-readable description used in the error message.
        max_length: Upper bound on the value length.

    Returns:
        The value, unchanged.

    Raises:
        ValidationError: If the value is empty, too long, or contains any
            character from SHELL_METACHARACTERS.
    """
    if not value:
        raise ValidationError(f"{context} cannot be empty")
    if len(value) > max_length:
        raise ValidationError(
            f"{context} exceeds maximum length of {max_length} characters"
        )
    bad = sorted({c for c in value if c in SHELL_METACHARACTERS})
    if bad:
        raise ValidationError(
            f"Invalid characters in {context}: {value!r}. "
            f"Shell metacharacters are not allowed: {''.join(bad)!r}"
        )
    return value


def validate_identity_value(value: str, context: str) -> str:
    """Validate a git identity field (name or email).

    Spaces, ``@``, ``+``, ``.`` and ``-`` are fine; metacharacters are not.
    """
    return validate_shell_safe(value, context)


def validate_env_key(key: str) -> str:
    if not _ENV_KEY.fullmatch(key):
        raise ValidationError(
            f"Invalid environment variable key: {key!r}. "
            "Must match [A-Za-z_][A-Za-z0-9_]*"
        )
    return key


def validate_project_name(name: str) -> str:
    """Validate a project name used in repository paths."""
    if not name:
        raise ValidationError("Project name cannot be empty")
    if len(name) > MAX_PROJECT_NAME_LENGTH:
        raise ValidationError(
            f"Project name cannot exceed {MAX_PROJECT_NAME_LENGTH} characters"
        )
    if not _PROJECT_NAME.fullmatch(name):
        raise ValidationError(
            f"Invalid project name: {name!r}. "
            "Only alphanumeric, dash, underscore, and dot allowed."
        )
    if name[0] in ".-":
        raise ValidationError(f"Project name {name!r} cannot start with a dot or dash")
    return name


def validate_instance_name(name: str) -> str:
    """Instance names end up in tags and security group names."""
    if not name:
        raise ValidationError("Instance name cannot be empty")
    if len(name) > MAX_PROJECT_NAME_LENGTH:
        raise ValidationError(
            f"Instance name cannot exceed {MAX_PROJECT_NAME_LENGTH} characters"
        )
    if not _INSTANCE_NAME.fullmatch(name):
        raise ValidationError(
            f"Invalid instance name: {name!r}. "
            "Only alphanumeric, dash, and underscore allowed; must start with a letter or digit."
        )
    return name


def validate_username(username: str) -> str:
    """Validate a Unix login user name."""
    if not username or len(username) > MAX_USERNAME_LENGTH:
        raise ValidationError(
            f"Username must be 1-{MAX_USERNAME_LENGTH} characters, got {len(username)}"
        )
    if not _USERNAME.fullmatch(username):
        raise ValidationError(
            f"Invalid username: {username!r}. "
            "Only alphanumeric, underscore, and dash allowed; cannot start with a digit or dash."
        )
    return username


def validate_ssh_public_key(key: str) -> str:
    """Validate a single-line OpenSSH public key and return it stripped.

    The key is written into authorized_keys through a quoted heredoc, so
    it must be exactly one line with base64 key material.
    """
    key = key.strip()
    if not key:
        raise ValidationError("SSH key is empty")
    if "\n" in key or "\r" in key:
        raise ValidationError(
            "SSH key contains multiple lines. Only single-line keys are supported."
        )
    if not key.startswith(SSH_KEY_PREFIXES):
        raise ValidationError(
            "Invalid SSH public key format. Must start with 'ssh-rsa', "
            f"'ssh-ed25519', or 'ecdsa-sha2-nistp*'. Got: {key[:30]}..."
        )

    parts = key.split()
    if len(parts) < 2:
        raise ValidationError("SSH key appears malformed (missing key data)")

    material = parts[1]
    if not _BASE64.fullmatch(material):
        raise ValidationError(
            "SSH key material contains invalid characters (expected base64)"
        )
    if len(material) < MIN_SSH_KEY_MATERIAL_LENGTH:
        raise ValidationError(
            f"SSH key material too short (expected at least {MIN_SSH_KEY_MATERIAL_LENGTH} characters)"
        )
    return key


__all__ = [
    "SHELL_METACHARACTERS",
    "validate_env_key",
    "validate_identity_value",
    "validate_instance_name",
    "validate_project_name",
    "validate_shell_safe",
    "validate_ssh_public_key",
    "validate_username",
]
