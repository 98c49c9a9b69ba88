"""
Client module for the TCP relay.

Connects to the configured address and either relays the connection
over local stdio or replaces this process with the handler command.
"""

import logging

from tcprelay.endpoints import connect
from tcprelay.process import exec_command
from tcprelay.relay import RelayEngine
from tcprelay.resolver import resolve

logger = logging.getLogger(__name__)


def run_client(config, gate):
    """
    Entry point of the client role.

    Args:
        config: Config of this run
        gate: Installed SignalGate

    Returns:
        SessionOutcome: Result of the relay session

    Raises:
        TcpRelayError: On any fatal condition, including transfer errors
    """
    candidates = resolve(config.host, config.service)
    conn = connect(candidates)

    if config.command is not None:
        # Does not return on success
        exec_command(conn, config.command)

    try:
        engine = RelayEngine(config.buffer_size, config.allow_half, gate)
        return engine.run(conn)
    finally:
        logger.info(f'Closing socket {conn.fileno()}')
        conn.close()
