"""Instance records and the persistence seam.

``Lifecycle.up`` produces an InstanceRecord and the caller persists it;
``Lifecycle.destroy`` removes it through the same InstanceStore. The file
format behind the store is not this package's concern.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class InstanceRecord:
    """Everything needed to reach or tear down a launched instance."""

    name: str
    instance_id: str
    profile_name: str
    region: str | None
    login_user: str
    security_group_id: str | None
    created_at: datetime
    project_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstanceRecord:
        return cls(
            name=str(data["name"]),
            instance_id=str(data["instance_id"]),
            profile_name=str(data["profile_name"]),
            region=data.get("region"),
            login_user=str(data.get("login_user", "ubuntu")),
            security_group_id=data.get("security_group_id"),
            created_at=datetime.fromisoformat(data["created_at"]),
            project_name=data.get("project_name"),
        )


class InstanceStore(Protocol):
    """Local persistence of instance records, keyed by instance name."""

    def get(self, name: str) -> InstanceRecord | None: ...

    def save(self, record: InstanceRecord) -> None: ...

    def remove(self, name: str) -> None: ...


__all__ = ["InstanceRecord", "InstanceStore"]
