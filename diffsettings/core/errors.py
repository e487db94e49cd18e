from __future__ import annotations


class SettingsStoreError(Exception):
    """Base class for failures raised by the settings store."""


class ProtectionError(SettingsStoreError):
    """Protecting or unprotecting the backing file failed."""


class StoreCorruptError(SettingsStoreError):
    """The backing file could not be opened as a record store."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class PersistError(SettingsStoreError):
    """A write against an open record store failed."""

    def __init__(self, message: str, *, operation: str, details: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.details = details or ""


__all__ = [
    "SettingsStoreError",
    "ProtectionError",
    "StoreCorruptError",
    "PersistError",
]
