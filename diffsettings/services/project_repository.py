from __future__ import annotations

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from diffsettings.core.errors import PersistError
from diffsettings.lib.paths import settings_file_path
from diffsettings.lib.redaction import describe_connection_string
from diffsettings.services.failure_reporter import FailureReporter
from diffsettings.services.lifecycle_guard import LifecycleGuard, get_lifecycle_guard
from diffsettings.services.project_model import (
    LAST_CONFIGURATION_NAME,
    PersistResult,
    Project,
    ProjectType,
)
from diffsettings.services.protection import ProtectionCodec, default_codec
from diffsettings.storage.record_store import RecordStore

PROJECTS_COLLECTION = "projects"


class ProjectRepository:
    """Saved projects and the last used configuration.

    Each public call opens the protected settings file, does its work and
    closes it again while holding the lifecycle guard. Writes never raise:
    ``upsert`` and ``delete`` report failures and return False or 0; the
    ``*_result`` variants carry the error.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        codec: ProtectionCodec | None = None,
        guard: LifecycleGuard | None = None,
        reporter: FailureReporter | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._path = Path(path) if path is not None else settings_file_path()
        self._codec = codec or default_codec()
        self._guard = guard or get_lifecycle_guard()
        self._reporter = reporter or FailureReporter()
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    @property
    def path(self) -> Path:
        return self._path

    def _store(self) -> RecordStore:
        return RecordStore(self._path, self._codec, self._guard)

    def get_all(self) -> list[Project]:
        with self._store() as store:
            docs = store.collection(PROJECTS_COLLECTION).find_all()
        return [Project.from_document(doc) for doc in docs]

    def get(self, project_id: uuid.UUID) -> Optional[Project]:
        with self._store() as store:
            doc = store.collection(PROJECTS_COLLECTION).find_by_id(str(project_id))
        return Project.from_document(doc) if doc else None

    def delete(self, project_id: uuid.UUID) -> int:
        """Remove every project with *project_id*; 0 when none matched or the delete failed."""
        return self.delete_result(project_id).count

    def delete_result(self, project_id: uuid.UUID) -> PersistResult:
        key = str(project_id)
        context = self._operation_context("delete", id=key)
        try:
            with self._store() as store:
                removed = store.collection(PROJECTS_COLLECTION).delete_many(lambda doc: doc.get("id") == key)
        except Exception as exc:
            error = self._persist_error(exc, "delete")
            self._logger.error("Project delete failed", extra=context, exc_info=True)
            self._reporter.report(str(error), error.details or repr(exc))
            return PersistResult(ok=False, error=error)
        self._logger.info("Projects deleted", extra={**context, "removed": removed})
        return PersistResult(ok=True, count=removed)

    def get_last_configuration(self) -> Optional[Project]:
        with self._store() as store:
            doc = store.collection(PROJECTS_COLLECTION).find_one(
                lambda doc: bool(doc.get("is_last_configuration")),
                order_by="project_name",
            )
        return Project.from_document(doc) if doc else None

    def save_last_configuration(self, connection_string_source: str, connection_string_destination: str) -> bool:
        # Read-modify-write under one guard hold; other processes are not excluded.
        with self._guard:
            last = self.get_last_configuration() or Project(
                id=uuid.uuid4(),
                project_name=LAST_CONFIGURATION_NAME,
                type=ProjectType.SQL_SERVER,
                is_last_configuration=True,
            )
            last.connection_string_source = connection_string_source
            last.connection_string_destination = connection_string_destination
            return self.upsert(last)

    def upsert(self, project: Project) -> bool:
        return self.upsert_result(project).ok

    def upsert_result(self, project: Project) -> PersistResult:
        context = self._operation_context(
            "upsert",
            id=str(project.id),
            project_name=project.project_name,
            source=describe_connection_string(project.connection_string_source),
            destination=describe_connection_string(project.connection_string_destination),
        )
        try:
            saved_at = self._clock()
            document = project.as_document()
            document["saved_date_time"] = saved_at.isoformat()
            with self._store() as store:
                inserted = store.collection(PROJECTS_COLLECTION).upsert(document)
        except Exception as exc:
            error = self._persist_error(exc, "upsert")
            self._logger.error("Project save failed", extra=context, exc_info=True)
            self._reporter.report(str(error), error.details or repr(exc))
            return PersistResult(ok=False, error=error)
        project._stamp(saved_at)
        self._logger.info("Project saved", extra={**context, "inserted": inserted})
        return PersistResult(ok=True, count=1)

    @staticmethod
    def _persist_error(exc: Exception, operation: str) -> PersistError:
        if isinstance(exc, PersistError):
            return exc
        return PersistError(str(exc), operation=operation, details=repr(exc))

    def _operation_context(self, operation: str, **extra: object) -> dict[str, object]:
        context: dict[str, object] = {"operation": operation, "path": str(self._path)}
        context.update(extra)
        return context


__all__ = ["ProjectRepository", "PROJECTS_COLLECTION"]
