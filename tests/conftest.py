from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest
from cryptography.fernet import Fernet
from PySide6 import QtWidgets

from diffsettings.services.failure_reporter import FailureReporter
from diffsettings.services.lifecycle_guard import LifecycleGuard
from diffsettings.services.project_repository import ProjectRepository
from diffsettings.services.protection import FernetCodec

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session")
def qt_app() -> Iterator[QtWidgets.QApplication]:
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    yield app


@pytest.fixture()
def codec() -> FernetCodec:
    return FernetCodec(Fernet.generate_key())


@pytest.fixture()
def guard() -> LifecycleGuard:
    return LifecycleGuard()


@pytest.fixture()
def settings_path(tmp_path: Path) -> Path:
    return tmp_path / "OpenDBDiff" / "settings.sqlite"


@pytest.fixture()
def repository(settings_path: Path, codec: FernetCodec, guard: LifecycleGuard) -> ProjectRepository:
    return ProjectRepository(settings_path, codec=codec, guard=guard, reporter=FailureReporter())
