from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from diffsettings.core.errors import PersistError
from diffsettings.lib.redaction import describe_connection_string

LAST_CONFIGURATION_NAME = "LastConfiguration"


class ProjectType(enum.IntEnum):
    SQL_SERVER = 1


@runtime_checkable
class OptionsPayload(Protocol):
    """Comparison options owned by the calling application."""

    def serialize(self) -> str:
        ...


@dataclass(eq=False)
class Project:
    """A saved pair of comparison endpoints.

    ``options`` rides along in memory only; it is never persisted.
    ``saved_date_time`` is stamped by the repository on every successful write.
    """

    project_name: str = ""
    type: ProjectType = ProjectType.SQL_SERVER
    connection_string_source: Optional[str] = None
    connection_string_destination: Optional[str] = None
    is_last_configuration: bool = False
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    options: Optional[OptionsPayload] = None
    _saved_date_time: Optional[datetime] = field(default=None, init=False)

    @property
    def saved_date_time(self) -> Optional[datetime]:
        return self._saved_date_time

    def _stamp(self, when: datetime) -> None:
        self._saved_date_time = when

    def serialized_options(self) -> Optional[str]:
        if self.options is None:
            return None
        return self.options.serialize()

    def as_document(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_name": self.project_name,
            "type": int(self.type),
            "connection_string_source": self.connection_string_source,
            "connection_string_destination": self.connection_string_destination,
            "is_last_configuration": self.is_last_configuration,
            "saved_date_time": self._saved_date_time.isoformat() if self._saved_date_time else None,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Project":
        project = cls(
            project_name=doc.get("project_name") or "",
            type=ProjectType(int(doc.get("type") or ProjectType.SQL_SERVER)),
            connection_string_source=doc.get("connection_string_source"),
            connection_string_destination=doc.get("connection_string_destination"),
            is_last_configuration=bool(doc.get("is_last_configuration", False)),
            id=uuid.UUID(str(doc["id"])),
        )
        saved = doc.get("saved_date_time")
        if saved:
            project._stamp(datetime.fromisoformat(saved))
        return project

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Project):
            return NotImplemented
        return self.as_document() == other.as_document()

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return (
            f"Project(id={self.id}, project_name={self.project_name!r}, type={self.type.name}, "
            f"source={describe_connection_string(self.connection_string_source)!r}, "
            f"destination={describe_connection_string(self.connection_string_destination)!r}, "
            f"is_last_configuration={self.is_last_configuration})"
        )


@dataclass(slots=True)
class PersistResult:
    ok: bool
    error: Optional[PersistError] = None
    count: int = 0

    def __bool__(self) -> bool:
        return self.ok


__all__ = [
    "LAST_CONFIGURATION_NAME",
    "ProjectType",
    "OptionsPayload",
    "Project",
    "PersistResult",
]
