from __future__ import annotations

from typing import Optional

from PySide6 import QtWidgets

from diffsettings.services.failure_reporter import ErrorPrompt

ERROR_TITLE = "Project error"


def ask_error_continuation(
    parent: Optional[QtWidgets.QWidget],
    title: str,
    message: str,
    *,
    default_yes: bool = True,
) -> bool:
    buttons = QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No
    default = QtWidgets.QMessageBox.Yes if default_yes else QtWidgets.QMessageBox.No
    response = QtWidgets.QMessageBox.critical(parent, title, message, buttons, default)
    return response == QtWidgets.QMessageBox.Yes


def format_error_prompt(message: str, details: str) -> str:
    body = f"{message}\n\nDo you want to see further errors?"
    if details:
        body = f"{body}\n\n{details}"
    return body


def qt_error_prompt(parent: Optional[QtWidgets.QWidget] = None) -> ErrorPrompt:
    """Build a FailureReporter prompt backed by a Yes/No error box."""

    def prompt(message: str, details: str) -> bool:
        return ask_error_continuation(parent, ERROR_TITLE, format_error_prompt(message, details))

    return prompt


__all__ = ["ask_error_continuation", "format_error_prompt", "qt_error_prompt", "ERROR_TITLE"]
