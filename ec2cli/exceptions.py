"""Custom exception hierarchy for ec2-cli.

All ec2-cli exceptions inherit from Ec2CliError, enabling callers to
catch every lifecycle failure with a single except clause.

AWS SDK failures are translated at the client boundary by
:func:`translate_client_error`, so business logic only ever sees
ec2-cli exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

if TYPE_CHECKING:
    from botocore.exceptions import ClientError


class Ec2CliError(Exception):
    """Base exception for all ec2-cli errors."""


class ConfigurationError(Ec2CliError):
    """Raised for invalid configuration or missing required settings."""


class ValidationError(ConfigurationError):
    """Raised when user-controlled input is unsafe or malformed."""


class NotFoundError(Ec2CliError):
    """Raised when a required AWS resource does not exist."""


class InstanceNotFoundError(NotFoundError):
    """Raised when an EC2 instance cannot be found."""

    def __init__(self, instance_id: str) -> None:
        self.instance_id = instance_id
        super().__init__(f"Instance not found: {instance_id}")


class ImageNotFoundError(NotFoundError):
    """Raised when no AMI matches the requested selector."""


class AwsApiError(Ec2CliError):
    """Raised when an AWS API call fails."""

    def __init__(self, message: str, code: str = "Unknown", operation: str = "") -> None:
        self.code = code
        self.operation = operation
        super().__init__(message)


class TransientAPIError(AwsApiError):
    """Raised for throttling and other retryable AWS failures."""


class TimeoutError(Ec2CliError):  # noqa: A001
    """Raised when a polling loop exceeds its deadline."""


class UnexpectedStateError(Ec2CliError):
    """Raised when an instance reports a state outside the expected transitions."""

    def __init__(self, instance_id: str, state: str, expected: str) -> None:
        self.instance_id = instance_id
        self.state = state
        self.expected = expected
        super().__init__(
            f"Instance {instance_id} in unexpected state '{state}' while waiting for {expected}"
        )


class SessionBrokerError(Ec2CliError):
    """Raised when the Session Manager plugin is missing or fails."""


# =============================================================================
# botocore translation
# =============================================================================

_NOT_FOUND_CODES = frozenset({
    "InvalidInstanceID.NotFound",
    "InvalidInstanceID.Malformed",
    "InvalidGroup.NotFound",
    "InvalidGroupId.NotFound",
    "InvalidSubnetID.NotFound",
    "InvalidVpcID.NotFound",
    "InvalidAMIID.NotFound",
    "NoSuchEntity",
})

_TRANSIENT_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "RequestThrottled",
    "ServiceUnavailable",
    "InternalError",
    "DependencyViolation",
})


def error_code(e: ClientError) -> str:
    """Extract the AWS error code from a botocore ClientError."""
    return e.response.get("Error", {}).get("Code", "Unknown")


def is_not_found(e: BaseException) -> bool:
    """Check whether an exception means "resource does not exist"."""
    from botocore.exceptions import ClientError

    match e:
        case NotFoundError():
            return True
        case ClientError():
            return error_code(e) in _NOT_FOUND_CODES
        case _:
            return False


def translate_client_error(e: ClientError, context: str) -> NoReturn:
    """Re-raise a botocore ClientError as the matching ec2-cli exception."""
    code = error_code(e)
    message = e.response.get("Error", {}).get("Message", str(e))
    operation = getattr(e, "operation_name", "")
    text = f"{context}: {code}: {message}"

    if code in _NOT_FOUND_CODES:
        raise NotFoundError(text) from e
    if code in _TRANSIENT_CODES:
        raise TransientAPIError(text, code=code, operation=operation) from e
    raise AwsApiError(text, code=code, operation=operation) from e


__all__ = [
    "AwsApiError",
    "ConfigurationError",
    "Ec2CliError",
    "ImageNotFoundError",
    "InstanceNotFoundError",
    "NotFoundError",
    "SessionBrokerError",
    "TimeoutError",
    "TransientAPIError",
    "UnexpectedStateError",
    "ValidationError",
    "error_code",
    "is_not_found",
    "translate_client_error",
]
