"""
Blog API Backend: Graceful Shutdown Coordination
================================================

What:  Turns SIGTERM / SIGINT into one orderly cleanup-then-exit sequence.
How:   ShutdownCoordinator holds a registry of named cleanup callbacks
       ("database" → DatabaseManager.disconnect, ...) and stop hooks
       (tell the HTTP server to stop accepting connections).

State Machine:
    running ──first signal or shutdown()──▶ shutting_down   (terminal)

    Signals received while shutting_down are logged and ignored; the
    cleanup sequence never restarts.

Exit Code:
    shutdown() always returns 0. A failing cleanup step is logged with its
    traceback and the remaining steps still run.
"""

import asyncio
import inspect
import logging
import signal
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Cleanup = Callable[[], Union[Awaitable[None], None]]

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShutdownState(str, Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class ShutdownCoordinator:
    def __init__(self) -> None:
        self.state = ShutdownState.RUNNING
        self.received_signal: Optional[int] = None
        self._cleanups: List[Tuple[str, Cleanup]] = []
        self._stop_hooks: List[Callable[[], None]] = []
        self._cleanup_started = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_shutting_down(self) -> bool:
        return self.state is ShutdownState.SHUTTING_DOWN

    def register(self, name: str, callback: Cleanup) -> None:
        """Add a cleanup step; steps run in registration order."""
        self._cleanups.append((name, callback))

    def on_stop(self, hook: Callable[[], None]) -> None:
        """Add a synchronous hook fired as soon as shutdown begins."""
        self._stop_hooks.append(hook)

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Route SIGTERM and SIGINT to handle_signal()."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self.handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(sig, self._threadsafe_handler)

    def uninstall(self) -> None:
        if self._loop is None:
            return
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                signal.signal(sig, signal.SIG_DFL)
        self._loop = None

    def _threadsafe_handler(self, signum: int, frame) -> None:
        if self._loop is None:
            # Signal arrived after uninstall(); nothing left to stop
            return
        self._loop.call_soon_threadsafe(self.handle_signal, signum)

    def handle_signal(self, signum: int) -> bool:
        """
        React to a termination signal.

        Returns:
            True if this call started the shutdown, False if it was ignored
            because shutdown was already under way.
        """
        name = signal.Signals(signum).name
        if self.is_shutting_down:
            logger.warning("Received %s while already shutting down; ignoring", name)
            return False
        self.received_signal = signum
        self._begin(reason=name)
        return True

    async def shutdown(self) -> int:
        """
        Run every registered cleanup exactly once and return the exit code.

        Safe to call after handle_signal() or on its own (e.g. when the
        server stopped for another reason). Later calls do nothing.
        """
        if not self.is_shutting_down:
            self._begin(reason="server stopped")
        if self._cleanup_started:
            return 0
        self._cleanup_started = True

        failed = []
        for name, callback in self._cleanups:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                failed.append(name)
                logger.exception("Cleanup step '%s' failed during shutdown", name)

        if failed:
            logger.warning(
                "Shutdown finished with errors",
                extra={"failed_steps": ",".join(failed)},
            )
        else:
            logger.info("Shutdown complete.")
        return 0

    def _begin(self, reason: str) -> None:
        self.state = ShutdownState.SHUTTING_DOWN
        logger.warning("Server SHUTDOWN", extra={"reason": reason})
        for hook in self._stop_hooks:
            try:
                hook()
            except Exception:
                logger.exception("Stop hook failed during shutdown")
