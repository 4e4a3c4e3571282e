"""Process-wide cancellation: in-flight transport registry and interrupt handling."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import threading
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CancelState(Enum):
    """Lifecycle of the controller. Transitions only move forward."""

    IDLE = "idle"
    CANCEL_REQUESTED = "cancel_requested"
    FORCE_EXITING = "force_exiting"


def _hard_exit() -> None:
    os._exit(1)


class CancellationController:
    """Tracks the transport handle each session has in flight.

    The first interrupt flips the cancelled flag and asks every registered
    handle to terminate gracefully. The second interrupt exits the process
    immediately. All methods are safe to call from any thread.
    """

    def __init__(self, exit_func: Callable[[], None] = _hard_exit):
        self._lock = threading.Lock()
        self._handles: dict[str, Any] = {}
        self._state = CancelState.IDLE
        self._interrupts = 0
        self._exit_func = exit_func

    @property
    def state(self) -> CancelState:
        return self._state

    def is_cancelled(self) -> bool:
        return self._state is not CancelState.IDLE

    @property
    def operator_interrupted(self) -> bool:
        """True once termination came from an operator interrupt."""
        return self._interrupts > 0

    def register(self, host: str, handle: Any) -> None:
        """Track ``handle`` as the in-flight transport of ``host``'s session.

        A handle registered after termination was requested is terminated
        right away.
        """
        with self._lock:
            self._handles[host] = handle
            cancelled = self.is_cancelled()
        if cancelled:
            handle.terminate()

    def deregister(self, host: str) -> None:
        with self._lock:
            self._handles.pop(host, None)

    def in_flight(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._handles)

    def request_termination(self) -> bool:
        """Move to CANCEL_REQUESTED and terminate every registered handle.

        Returns False if termination had already been requested.
        """
        with self._lock:
            if self._state is not CancelState.IDLE:
                return False
            self._state = CancelState.CANCEL_REQUESTED
            handles = list(self._handles.items())

        for host, handle in handles:
            logger.debug("Terminating transport for %s", host)
            try:
                handle.terminate()
            except OSError as e:
                logger.debug("Could not terminate transport for %s: %s", host, e)
        return True

    def force_exit(self) -> None:
        with self._lock:
            self._state = CancelState.FORCE_EXITING
        self._exit_func()

    def interrupt(self) -> None:
        """Handle one operator interrupt."""
        with self._lock:
            self._interrupts += 1
            first = self._interrupts == 1
        if first:
            logger.warning("Received interrupt signal. Terminating transport processes...")
            self.request_termination()
        else:
            logger.warning("Received second interrupt signal. Exiting...")
            self.force_exit()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Route SIGINT and SIGTERM on ``loop`` to :meth:`interrupt`."""
        loop = loop or asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self.interrupt)

    def remove_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
