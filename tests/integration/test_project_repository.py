from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path

import pytest

from diffsettings.core.errors import PersistError
from diffsettings.services.failure_reporter import FailureReporter
from diffsettings.services.lifecycle_guard import LifecycleGuard
from diffsettings.services.project_model import LAST_CONFIGURATION_NAME, Project, ProjectType
from diffsettings.services.project_repository import ProjectRepository
from diffsettings.services.protection import FernetCodec
from diffsettings.storage.record_store import Collection


@pytest.mark.integration
def test_upsert_then_get_all_round_trips(repository: ProjectRepository) -> None:
    project = Project(
        project_name="Nightly compare",
        connection_string_source="Server=a;Database=Sales",
        connection_string_destination="Server=b;Database=Sales",
    )
    assert repository.upsert(project) is True
    assert project.saved_date_time is not None

    matches = [p for p in repository.get_all() if p.id == project.id]
    assert len(matches) == 1
    stored = matches[0]
    assert stored.project_name == project.project_name
    assert stored.type is ProjectType.SQL_SERVER
    assert stored.connection_string_source == project.connection_string_source
    assert stored.connection_string_destination == project.connection_string_destination
    assert stored.is_last_configuration is False
    assert stored.saved_date_time == project.saved_date_time
    assert repository.get(project.id) == project


@pytest.mark.integration
def test_upsert_replaces_and_restamps(settings_path: Path, codec: FernetCodec, guard: LifecycleGuard) -> None:
    stamps = iter([datetime(2024, 1, 1, 8, 0), datetime(2024, 1, 2, 9, 30)])
    repository = ProjectRepository(settings_path, codec=codec, guard=guard, clock=lambda: next(stamps))

    project = Project(project_name="first")
    repository.upsert(project)
    project.project_name = "renamed"
    repository.upsert(project)

    stored = repository.get_all()
    assert len(stored) == 1
    assert stored[0].project_name == "renamed"
    assert stored[0].saved_date_time == datetime(2024, 1, 2, 9, 30)


@pytest.mark.integration
def test_delete_is_idempotent(repository: ProjectRepository) -> None:
    assert repository.delete(uuid.uuid4()) == 0

    project = Project(project_name="to delete")
    repository.upsert(project)
    assert repository.delete(project.id) == 1
    assert repository.delete(project.id) == 0
    assert repository.get(project.id) is None


@pytest.mark.integration
def test_save_last_configuration_keeps_single_record(repository: ProjectRepository) -> None:
    assert repository.save_last_configuration("srcA", "dstA") is True
    assert repository.save_last_configuration("srcB", "dstB") is True

    flagged = [p for p in repository.get_all() if p.is_last_configuration]
    assert len(flagged) == 1
    assert flagged[0].project_name == LAST_CONFIGURATION_NAME
    assert (flagged[0].connection_string_source, flagged[0].connection_string_destination) == ("srcB", "dstB")


@pytest.mark.integration
def test_last_configuration_picks_first_by_name(repository: ProjectRepository) -> None:
    repository.upsert(Project(project_name="Zulu", is_last_configuration=True, connection_string_source="z"))
    repository.upsert(Project(project_name="Alpha", is_last_configuration=True, connection_string_source="a"))
    repository.upsert(Project(project_name="Aardvark", is_last_configuration=False))

    last = repository.get_last_configuration()
    assert last is not None
    assert last.project_name == "Alpha"


@pytest.mark.integration
def test_end_to_end_last_configuration(repository: ProjectRepository, settings_path: Path) -> None:
    assert not settings_path.exists()
    assert repository.get_last_configuration() is None

    repository.save_last_configuration("src1", "dst1")
    first = repository.get_last_configuration()
    assert first is not None
    assert first.is_last_configuration
    assert (first.connection_string_source, first.connection_string_destination) == ("src1", "dst1")

    repository.save_last_configuration("src2", "dst2")
    second = repository.get_last_configuration()
    assert second is not None
    assert second.id == first.id
    assert (second.connection_string_source, second.connection_string_destination) == ("src2", "dst2")

    assert len(repository.get_all()) == 1


@pytest.mark.integration
def test_failed_upsert_returns_false_and_reports(tmp_path: Path, codec: FernetCodec, guard: LifecycleGuard) -> None:
    # A directory where the file should be cannot be opened nor recreated.
    blocked = tmp_path / "settings.sqlite"
    blocked.mkdir()
    reported: list[str] = []

    def prompt(message: str, details: str) -> bool:
        reported.append(message)
        return False

    repository = ProjectRepository(
        blocked,
        codec=codec,
        guard=guard,
        reporter=FailureReporter(prompt, enabled=True),
    )
    project = Project(project_name="unsaved")

    result = repository.upsert_result(project)
    assert not result
    assert isinstance(result.error, PersistError)
    assert project.saved_date_time is None
    assert repository.upsert(project) is False
    # "No" on the first prompt silences the second failure.
    assert len(reported) == 1


@pytest.mark.integration
def test_failed_delete_returns_zero_and_reports(monkeypatch, repository: ProjectRepository, settings_path: Path, codec: FernetCodec, guard: LifecycleGuard) -> None:
    project = Project(project_name="keep me")
    assert repository.upsert(project) is True

    def broken_delete(self: Collection, where) -> int:
        raise PersistError("disk I/O error", operation="delete")

    monkeypatch.setattr(Collection, "delete_many", broken_delete)
    reported: list[str] = []

    def prompt(message: str, details: str) -> bool:
        reported.append(message)
        return True

    reporting = ProjectRepository(
        settings_path,
        codec=codec,
        guard=guard,
        reporter=FailureReporter(prompt, enabled=True),
    )

    result = reporting.delete_result(project.id)
    assert not result
    assert result.count == 0
    assert isinstance(result.error, PersistError)
    assert reporting.delete(project.id) == 0
    assert reported == ["disk I/O error", "disk I/O error"]

    monkeypatch.undo()
    assert [p.id for p in repository.get_all()] == [project.id]
