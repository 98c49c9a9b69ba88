"""
Signal handling for the TCP relay.

The SignalGate records the number of the last terminating signal. The
handler does nothing else; the relay and accept loops poll the recorded
value at every iteration boundary.

Python restarts system calls interrupted by a signal, so a bare flag
would only be noticed after the next I/O event. The gate therefore
also owns a wakeup socket pair passed to signal.set_wakeup_fd(); loops
register its read end with their selector and a signal ends the wait.
"""

import signal
import socket
import logging

logger = logging.getLogger(__name__)

# Signals that end the current loop
TERMINATING_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SignalGate:
    """
    Process wide record of the last caught terminating signal.

    Attributes:
        caught: 0 while no terminating signal arrived, else its number

    SIGCHLD is handled too, but only to wake the accept loop so that it
    reaps delegated handlers promptly; it is never recorded.

    Use as a context manager; leaving it restores the previous handlers.
    """

    def __init__(self):
        self.caught = 0
        self._previous = {}
        self._previous_wakeup = -1
        self._reader = None
        self._writer = None

    def _handle(self, signum, frame):
        if signum != signal.SIGCHLD:
            self.caught = signum

    def install(self):
        self._reader, self._writer = socket.socketpair()
        self._reader.setblocking(False)
        self._writer.setblocking(False)
        self._previous_wakeup = signal.set_wakeup_fd(self._writer.fileno(), warn_on_full_buffer=False)

        for signum in TERMINATING_SIGNALS + (signal.SIGCHLD,):
            self._previous[signum] = signal.signal(signum, self._handle)
        logger.debug(f'Signal gate installed, wakeup fd {self._writer.fileno()}')
        return self

    def uninstall(self):
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

        if self._writer is not None:
            signal.set_wakeup_fd(self._previous_wakeup)
            self._writer.close()
            self._reader.close()
            self._reader = self._writer = None

    def __enter__(self):
        return self.install()

    def __exit__(self, exc_type, exc, tb):
        self.uninstall()

    @property
    def wakeup(self):
        """Socket that becomes readable whenever a handled signal arrives."""
        return self._reader

    def drain(self):
        """Discards pending wakeup bytes."""
        try:
            while self._reader.recv(512):
                pass
        except BlockingIOError:
            pass

    def reset(self):
        self.caught = 0
