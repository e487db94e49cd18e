"""
Per-user protection of the settings file.

Wraps a byte buffer with OS-scoped encryption that needs no secret from the
caller:
- Windows: DPAPI (CurrentUser scope) via pywin32
- macOS / Linux: a Fernet key generated once per user and kept in the system
  keyring (Keychain / Secret Service)

This defends data at rest against other local accounts, not against the
owning user's own session.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken

from diffsettings.core.errors import ProtectionError

KEYRING_SERVICE = "diffsettings"
KEYRING_KEY_NAME = "settings-file-key"
_DPAPI_DESCRIPTION = "OpenDBDiff settings"

logger = logging.getLogger(__name__)


class ProtectionCodec(Protocol):
    def protect(self, data: bytes) -> bytes:
        ...

    def unprotect(self, data: bytes) -> bytes:
        ...


class DpapiCodec:
    """Windows DPAPI bound to the current user."""

    def protect(self, data: bytes) -> bytes:
        import win32crypt

        try:
            return win32crypt.CryptProtectData(data, _DPAPI_DESCRIPTION, None, None, None, 0)
        except Exception as exc:
            raise ProtectionError(f"CryptProtectData failed: {exc}") from exc

    def unprotect(self, data: bytes) -> bytes:
        import win32crypt

        try:
            return win32crypt.CryptUnprotectData(data, None, None, None, 0)[1]
        except Exception as exc:
            raise ProtectionError(f"CryptUnprotectData failed: {exc}") from exc


class FernetCodec:
    """Fernet (AES-128-CBC + HMAC-SHA256) with a fixed key."""

    def __init__(self, key: bytes) -> None:
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise ProtectionError(f"Invalid protection key: {exc}") from exc

    def protect(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def unprotect(self, data: bytes) -> bytes:
        try:
            return self._fernet.decrypt(data)
        except InvalidToken as exc:
            # Raised for plaintext input too, e.g. a file never protected.
            raise ProtectionError("Data was not protected for this user") from exc


class KeyringFernetCodec:
    """Fernet codec whose key lives in the user's keyring.

    The key is created on first use and cached for the process lifetime.
    """

    def __init__(self, service: str = KEYRING_SERVICE, key_name: str = KEYRING_KEY_NAME) -> None:
        self._service = service
        self._key_name = key_name
        self._lock = threading.Lock()
        self._codec: Optional[FernetCodec] = None

    def _resolve(self) -> FernetCodec:
        with self._lock:
            if self._codec is not None:
                return self._codec
            import keyring
            from keyring.errors import KeyringError

            try:
                stored = keyring.get_password(self._service, self._key_name)
                if stored is None:
                    stored = Fernet.generate_key().decode("ascii")
                    keyring.set_password(self._service, self._key_name, stored)
                    logger.info("Generated settings protection key", extra={"service": self._service})
            except KeyringError as exc:
                raise ProtectionError(f"System keyring unavailable: {exc}") from exc
            self._codec = FernetCodec(stored.encode("ascii"))
            return self._codec

    def protect(self, data: bytes) -> bytes:
        return self._resolve().protect(data)

    def unprotect(self, data: bytes) -> bytes:
        return self._resolve().unprotect(data)


def default_codec() -> ProtectionCodec:
    """Return the protection codec for the running platform."""
    if sys.platform == "win32":
        return DpapiCodec()
    return KeyringFernetCodec()


__all__ = [
    "ProtectionCodec",
    "DpapiCodec",
    "FernetCodec",
    "KeyringFernetCodec",
    "default_codec",
    "KEYRING_SERVICE",
]
