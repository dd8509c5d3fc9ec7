"""
Process termination signal handling.
"""

import asyncio
import logging
import signal
from typing import Optional

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _restore(sig, previous) -> None:
    # None means the handler was not installed from Python
    if previous is not None:
        signal.signal(sig, previous)


class TerminationSignal:
    """
    One-shot termination event fed by SIGINT and SIGTERM.

    The first signal sets the event; later signals are no-ops.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: list = []
        self._fallback: list = []
        self.received: Optional[int] = None

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def install(self) -> None:
        """Register signal handlers with the running event loop."""
        self._loop = asyncio.get_running_loop()

        for sig in TERMINATION_SIGNALS:
            previous = signal.getsignal(sig)
            try:
                self._loop.add_signal_handler(sig, self.trigger, sig)
                self._installed.append((sig, previous))
            except (NotImplementedError, RuntimeError):
                # Loops without add_signal_handler support (e.g. Windows)
                signal.signal(sig, self._handle_signal)
                self._fallback.append((sig, previous))

    def uninstall(self) -> None:
        """Restore the signal handling in place before ``install``."""
        for sig, previous in self._installed:
            self._loop.remove_signal_handler(sig)
            _restore(sig, previous)
        for sig, previous in self._fallback:
            _restore(sig, previous)
        self._installed.clear()
        self._fallback.clear()

    def _handle_signal(self, signum, frame) -> None:
        self._loop.call_soon_threadsafe(self.trigger, signum)

    def trigger(self, signum: Optional[int] = None) -> None:
        """Set the termination event."""
        if self._event.is_set():
            return

        self.received = signum
        if signum is not None:
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self._event.set()

    async def wait(self) -> None:
        """Block until termination is requested."""
        await self._event.wait()

    async def __aenter__(self):
        self.install()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.uninstall()
