from __future__ import annotations

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class LifecycleGuard:
    """Serializes open/use/close cycles on the settings file within a process.

    Holding the guard across the whole span keeps protect-on-close from
    interleaving with another thread's unprotect-on-open. The lock is
    re-entrant so an operation built from several store cycles can hold it
    throughout. Separate processes are not coordinated.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def acquire(self) -> None:
        self._lock.acquire()

    def release(self) -> None:
        self._lock.release()

    def __enter__(self) -> "LifecycleGuard":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


# Global instance
_lifecycle_guard: Optional[LifecycleGuard] = None
_init_lock = threading.Lock()


def get_lifecycle_guard() -> LifecycleGuard:
    """Get the process-wide guard for the settings file."""
    global _lifecycle_guard
    with _init_lock:
        if _lifecycle_guard is None:
            _lifecycle_guard = LifecycleGuard()
            logger.debug("Lifecycle guard created")
        return _lifecycle_guard


__all__ = ["LifecycleGuard", "get_lifecycle_guard"]
