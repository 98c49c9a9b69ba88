"""
Server module for the TCP relay.

The SessionDispatcher waits on the listening socket and on local input.
Each accepted connection is either relayed in-process, one client at a
time, or handed to a freshly forked handler process.
"""

import os
import selectors
import logging

from tcprelay.config import DISCARD_BUFFER_SIZE
from tcprelay.endpoints import bind
from tcprelay.errors import TransferError
from tcprelay.process import reap, spawn
from tcprelay.relay import RelayEngine
from tcprelay.resolver import describe, resolve

logger = logging.getLogger(__name__)

# Selector registration tags
LOCAL = 'local'
LISTENER = 'listener'
WAKEUP = 'wakeup'


class SessionDispatcher:
    """
    Accept loop of the server role.

    Args:
        listener: Bound, listening socket; the caller keeps ownership
        config: Config of this run
        gate: SignalGate polled at every iteration boundary
        local_in: Descriptor of local input, discarded while idle
        local_out: Descriptor of local output for in-process relays
    """

    def __init__(self, listener, config, gate, local_in=0, local_out=1):
        self.listener = listener
        self.config = config
        self.gate = gate
        self.local_in = local_in
        self.local_out = local_out
        self.engine = None
        if config.command is None:
            self.engine = RelayEngine(config.buffer_size, config.allow_half, gate,
                                      local_in=local_in, local_out=local_out)

    def _discard(self, selector):
        try:
            data = os.read(self.local_in, DISCARD_BUFFER_SIZE)
        except OSError as e:
            raise TransferError(f'read({self.local_in}, {DISCARD_BUFFER_SIZE}): {e}') from e

        if not data:
            # Nothing more will ever arrive; stop watching local input
            selector.unregister(self.local_in)
            logger.info('Local input closed.')
        else:
            logger.info(f'Discard {len(data)} bytes')

    def _accept(self):
        try:
            conn, peer = self.listener.accept()
        except OSError as e:
            logger.warning(f'accept({self.listener.fileno()}): {e}')
            return

        with conn:
            logger.info(f'Connected from {describe(conn.family, peer)}')

            if self.config.command is not None:
                spawn(conn, self.config.command)
                return

            try:
                self.engine.run(conn)
            except TransferError as e:
                logger.error(f'Session aborted: {e}')

    def serve(self):
        """
        Accepts and serves connections until a signal is caught.

        Returns:
            int: Number of the signal that ended the loop
        """
        with selectors.PollSelector() as selector:
            selector.register(self.local_in, selectors.EVENT_READ, LOCAL)
            selector.register(self.listener, selectors.EVENT_READ, LISTENER)
            selector.register(self.gate.wakeup, selectors.EVENT_READ, WAKEUP)

            while not self.gate.caught:
                logger.info('Waiting for connection...')

                for key, _ in selector.select():
                    if key.data == WAKEUP:
                        self.gate.drain()
                    elif key.data == LOCAL:
                        self._discard(selector)
                    elif key.data == LISTENER:
                        self._accept()
                    else:
                        raise RuntimeError(f'Unexpected event on {key.fileobj!r}')

                if self.config.command is not None:
                    reap()

        logger.info(f'Accepting loop caught signal {self.gate.caught}')
        return self.gate.caught


def run_server(config, gate):
    """
    Entry point of the server role.

    Resolves and binds the configured address, then dispatches sessions
    until a terminating signal arrives.

    Raises:
        TcpRelayError: On any fatal condition
    """
    candidates = resolve(config.host, config.service)
    listener = bind(candidates)
    try:
        return SessionDispatcher(listener, config, gate).serve()
    finally:
        logger.info(f'Closing socket {listener.fileno()}')
        listener.close()

