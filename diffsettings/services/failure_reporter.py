from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from diffsettings.lib.redaction import redact

# prompt(message, details) -> True to keep showing errors
ErrorPrompt = Callable[[str, str], bool]

logger = logging.getLogger(__name__)


class ErrorPromptLatch:
    """One-way switch: once tripped it stays tripped."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tripped = False

    @property
    def tripped(self) -> bool:
        return self._tripped

    def trip(self) -> None:
        with self._lock:
            self._tripped = True


class FailureReporter:
    """Escalates persistence failures to the user, if enabled.

    Disabled unless constructed with ``enabled=True`` and a prompt. Answering
    "no" (or a prompt that raises) suppresses prompts for the lifetime of
    this reporter.
    """

    def __init__(self, prompt: Optional[ErrorPrompt] = None, *, enabled: bool = False) -> None:
        self._prompt = prompt
        self._enabled = enabled
        self._latch = ErrorPromptLatch()

    @property
    def enabled(self) -> bool:
        return self._enabled and self._prompt is not None and not self._latch.tripped

    def report(self, message: str, details: str = "") -> bool:
        """Show the failure; return whether further failures should be shown."""
        if not self.enabled or self._prompt is None:
            return False
        try:
            keep_showing = bool(self._prompt(redact(message), redact(details)))
        except Exception:
            logger.warning("Error prompt failed; suppressing further prompts", exc_info=True)
            keep_showing = False
        if not keep_showing:
            self._latch.trip()
            logger.info("Further settings error prompts suppressed")
        return keep_showing


__all__ = ["ErrorPrompt", "ErrorPromptLatch", "FailureReporter"]
