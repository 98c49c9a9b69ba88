"""
Endpoint module for the TCP relay.

This module turns a list of resolved candidates into one usable socket,
either listening (server role) or connected (client role).

Both roles share one algorithm: open a socket for each candidate in
order, run the role specific terminal step on it, and stop at the first
candidate that succeeds. A failing candidate is logged, its socket is
closed, and the next one is tried.
"""

import socket
import logging

from tcprelay.config import LISTEN_BACKLOG
from tcprelay.errors import BindError, ConnectError
from tcprelay.resolver import describe, describe_candidates

logger = logging.getLogger(__name__)


def _bind_and_listen(sock, candidate):
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    # On exec, do not pass the listening socket
    sock.set_inheritable(False)
    sock.bind(candidate.sockaddr)
    sock.listen(LISTEN_BACKLOG)


def _connect(sock, candidate):
    sock.connect(candidate.sockaddr)


def establish(candidates, attempt, action):
    """
    Tries each candidate in order until attempt() succeeds on one.

    Args:
        candidates: Ordered AddressCandidate sequence
        attempt: Callable(sock, candidate) performing the terminal step;
            it signals failure by raising OSError
        action: Name of the terminal step, used in log messages

    Returns:
        tuple: (socket, address text) of the first successful candidate,
            or (None, address text of the last candidate tried)

    Note:
        Sockets of failed attempts are always closed before the next
        candidate is tried, so no descriptor outlives its attempt.
    """
    text = None
    for candidate in candidates:
        text = describe(candidate.family, candidate.sockaddr)

        try:
            sock = socket.socket(candidate.family, candidate.type, candidate.proto)
        except OSError as e:
            logger.warning(f'socket({text}): {e}')
            continue

        try:
            attempt(sock, candidate)
        except OSError as e:
            logger.warning(f'{action}({sock.fileno()}, {text}): {e}')
            sock.close()
            continue
        except BaseException:
            sock.close()
            raise

        return sock, text

    return None, text


def bind(candidates):
    """
    Binds and listens on the first usable candidate.

    The socket has SO_REUSEADDR set, is not inherited across exec, and
    listens with a zero backlog, so callers must accept promptly.

    Raises:
        BindError: If no candidate could be bound
    """
    logger.debug(f'Bind candidates: {describe_candidates(candidates)}')
    sock, text = establish(candidates, _bind_and_listen, 'bind')
    if sock is None:
        if text is None:
            raise BindError('Could not bind: no candidate addresses')
        raise BindError(f'Could not bind (last tried {text})')

    logger.info(f'Bound socket {sock.fileno()} to {text}')
    return sock


def connect(candidates):
    """
    Connects to the first candidate that accepts.

    Raises:
        ConnectError: If every candidate failed
    """
    logger.debug(f'Connect candidates: {describe_candidates(candidates)}')
    sock, text = establish(candidates, _connect, 'connect')
    if sock is None:
        if text is None:
            raise ConnectError('Could not connect: no candidate addresses')
        raise ConnectError(f'Could not connect (last tried {text})')

    logger.info(f'Connected socket {sock.fileno()} to {text}')
    return sock
