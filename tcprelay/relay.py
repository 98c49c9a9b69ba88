"""
Relay module for the TCP relay.

This module copies bytes in both directions between a connected socket
and the local input/output descriptors. A selector waits for readable
data; each readiness event triggers exactly one read into a single
reusable buffer, followed by as many writes as it takes to pass the
chunk on. Writes may block; reads never should, since they only happen
after the selector reported data.

Each direction is shut down on its own when its source reaches end of
stream, so one side can keep draining after the other side is done.
"""

import os
import socket
import selectors
import logging
from dataclasses import dataclass
from functools import partial

from tcprelay.errors import TransferError

logger = logging.getLogger(__name__)

# Selector registration tags
LOCAL = 'local'
REMOTE = 'remote'
WAKEUP = 'wakeup'


@dataclass
class SessionOutcome:
    """
    Summary of one finished relay session.

    Attributes:
        signal: Number of the signal that ended the session, 0 if none
        sent: Bytes forwarded from local input to the connection
        received: Bytes forwarded from the connection to local output
    """

    signal: int = 0
    sent: int = 0
    received: int = 0


def shutdown_half(target, how):
    """
    Shuts down one half of a socket, given as socket object or descriptor.

    Descriptors that are not sockets (pipes, terminals, files) are left
    alone. Failures are logged and otherwise ignored, since the peer may
    already have torn the connection down.

    Returns:
        bool: True if target is a socket
    """
    if isinstance(target, int):
        try:
            sock = socket.socket(fileno=target)
        except OSError:
            return False
        try:
            shutdown_half(sock, how)
        finally:
            sock.detach()
        return True

    try:
        target.shutdown(how)
    except OSError as e:
        logger.debug(f'shutdown({target.fileno()}, {how}): {e}')
    return True


def write_all(write, fd, data):
    """
    Writes the whole of data, resuming after short writes.

    Args:
        write: Callable taking a buffer and returning the count written
        fd: Descriptor number, for diagnostics
        data: memoryview of the bytes to write

    Raises:
        TransferError: If a write fails; interrupted writes are retried
            by the interpreter and never surface here
    """
    offset = 0
    while offset < len(data):
        try:
            offset += write(data[offset:])
        except OSError as e:
            raise TransferError(f'write({fd}, {len(data) - offset}): {e}') from e


class RelayEngine:
    """
    Bidirectional byte copy between a connection and local stdio.

    Args:
        buffer_size: Size of the single reusable transfer buffer
        allow_half: If True, the session lasts while either direction is
            open; if False, it ends as soon as one direction closes
        gate: SignalGate polled at every iteration boundary
        local_in: Descriptor read for the local to remote direction
        local_out: Descriptor written for the remote to local direction
    """

    def __init__(self, buffer_size, allow_half, gate, local_in=0, local_out=1):
        self.buffer = bytearray(buffer_size)
        self.allow_half = allow_half
        self.gate = gate
        self.local_in = local_in
        self.local_out = local_out

    def _keep_going(self, sending, receiving):
        if self.gate.caught:
            return False
        if self.allow_half:
            return sending or receiving
        return sending and receiving

    def _read_local(self, view):
        try:
            return os.readv(self.local_in, [view])
        except OSError as e:
            raise TransferError(f'read({self.local_in}, {len(view)}): {e}') from e

    def _read_remote(self, conn, view):
        try:
            return conn.recv_into(view)
        except ConnectionResetError as e:
            logger.warning(f'read({conn.fileno()}): {e}')
            return 0
        except OSError as e:
            raise TransferError(f'read({conn.fileno()}, {len(view)}): {e}') from e

    def run(self, conn):
        """
        Relays until both directions are closed or a signal is caught.

        Args:
            conn: Connected stream socket; the caller keeps ownership

        Returns:
            SessionOutcome: Which signal ended the session and the byte
                counts of both directions

        Raises:
            TransferError: If a read or write fails
        """
        outcome = SessionOutcome()
        view = memoryview(self.buffer)
        write_out = partial(os.write, self.local_out)
        sending = receiving = True

        # poll, unlike epoll, accepts regular files and devices on stdin
        with selectors.PollSelector() as selector:
            selector.register(self.local_in, selectors.EVENT_READ, LOCAL)
            selector.register(conn, selectors.EVENT_READ, REMOTE)
            selector.register(self.gate.wakeup, selectors.EVENT_READ, WAKEUP)

            while self._keep_going(sending, receiving):
                for key, _ in selector.select():
                    if key.data == WAKEUP:
                        self.gate.drain()

                    elif key.data == LOCAL:
                        count = self._read_local(view)
                        if count < 1:
                            sending = False
                            selector.unregister(self.local_in)
                            shutdown_half(self.local_in, socket.SHUT_RD)
                            shutdown_half(conn, socket.SHUT_WR)
                            logger.info('Shut down send direction.')
                        else:
                            write_all(conn.send, conn.fileno(), view[:count])
                            outcome.sent += count

                    elif key.data == REMOTE:
                        count = self._read_remote(conn, view)
                        if count < 1:
                            receiving = False
                            selector.unregister(conn)
                            shutdown_half(conn, socket.SHUT_RD)
                            shutdown_half(self.local_out, socket.SHUT_WR)
                            logger.info('Shut down recv direction.')
                        else:
                            write_all(write_out, self.local_out, view[:count])
                            outcome.received += count

                    else:
                        raise RuntimeError(f'Unexpected event on {key.fileobj!r}')

        outcome.signal = self.gate.caught
        if outcome.signal:
            logger.info(f'Communicating loop caught signal {outcome.signal}')
        logger.debug(f'Session sent {outcome.sent} bytes, received {outcome.received} bytes')
        return outcome
