"""Resource tag sets and EC2 filters for managed resources."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ec2cli.constants import MANAGED_TAG_VALUE, RESOURCE_PREFIX, Ec2CliTag

type Tag = dict[str, str]


def resource_tags(
    name: str | None = None,
    *,
    deployment: str | None = None,
    custom: Mapping[str, str] | None = None,
) -> list[Tag]:
    """Build the tag list applied to every resource ec2-cli creates.

    Operator tags are added first so the ec2-cli keys always win on
    collision.
    """
    tags: dict[str, str] = dict(custom or {})
    tags[Ec2CliTag.MANAGED] = MANAGED_TAG_VALUE
    if name is not None:
        tags[Ec2CliTag.NAME] = name
        tags[Ec2CliTag.AWS_NAME] = f"{RESOURCE_PREFIX}-{name}"
    if deployment is not None:
        tags[Ec2CliTag.DEPLOYMENT] = deployment
    return [{"Key": str(k), "Value": v} for k, v in tags.items()]


def tag_specification(resource_type: str, tags: list[Tag]) -> dict[str, Any]:
    return {"ResourceType": resource_type, "Tags": tags}


def managed_filters(name: str | None = None) -> list[dict[str, Any]]:
    """EC2 Filters matching ec2-cli managed resources, optionally by name."""
    filters = [{"Name": f"tag:{Ec2CliTag.MANAGED}", "Values": [MANAGED_TAG_VALUE]}]
    if name is not None:
        filters.append({"Name": f"tag:{Ec2CliTag.NAME}", "Values": [name]})
    return filters


def tag_value(tags: list[Tag] | None, key: str) -> str | None:
    for tag in tags or []:
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


__all__ = ["managed_filters", "resource_tags", "tag_specification", "tag_value"]
