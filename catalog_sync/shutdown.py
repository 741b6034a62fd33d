"""Graceful stop for long sync batches.

The first SIGINT/SIGTERM sets a flag that batch loops check between
catalog items; a second signal exits immediately.
"""

import signal
import sys
import threading
from typing import Optional

from catalog_sync.logging_config import get_logger

__all__ = [
    "ShutdownHandler",
    "get_shutdown_handler",
    "shutdown_requested",
]

logger = get_logger("shutdown")


class ShutdownHandler:
    """Process-wide shutdown flag driven by SIGINT/SIGTERM."""

    _instance: Optional["ShutdownHandler"] = None
    _lock = threading.Lock()

    def __init__(self) -> None:
        self._event = threading.Event()
        self._original_handlers: dict = {}
        self._installed = False

    @classmethod
    def get_instance(cls) -> "ShutdownHandler":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def install(self) -> "ShutdownHandler":
        """Install signal handlers (main thread only)."""
        if self._installed:
            return self

        for signum in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)

        self._installed = True
        return self

    def uninstall(self) -> None:
        if not self._installed:
            return

        for signum, handler in self._original_handlers.items():
            signal.signal(signum, handler)
        self._original_handlers.clear()
        self._installed = False

    def _handle_signal(self, signum: int, frame) -> None:
        logger.warning(
            f"Received {signal.Signals(signum).name}, finishing current items "
            f"(signal again to force quit)"
        )
        self._event.set()
        signal.signal(signum, self._force_exit)

    def _force_exit(self, signum: int, frame) -> None:
        logger.error("Force quitting")
        sys.exit(1)

    @property
    def shutdown_requested(self) -> bool:
        return self._event.is_set()

    def request(self) -> None:
        """Request shutdown without a signal."""
        self._event.set()

    def reset(self) -> None:
        """Clear the flag (for tests or reuse)."""
        self._event.clear()


def get_shutdown_handler() -> ShutdownHandler:
    return ShutdownHandler.get_instance()


def shutdown_requested() -> bool:
    return get_shutdown_handler().shutdown_requested
