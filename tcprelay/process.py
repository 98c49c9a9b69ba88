"""
Process delegation for the TCP relay.

A configured handler command takes over a connection by having the
socket wired to its standard input and output. The client role replaces
its own process image; the server role forks one child per accepted
connection and reaps terminated children later, without waiting.
"""

import os
import signal
import logging
from typing import NamedTuple, Optional

from tcprelay.errors import CommandError

logger = logging.getLogger(__name__)


class ChildExit(NamedTuple):
    """Termination report of a reaped child process."""

    pid: int
    code: Optional[int] = None
    signal: Optional[int] = None

    def describe(self):
        if self.code is not None:
            return f'Child {self.pid} returned {self.code}'
        if self.signal is not None:
            return f'Child {self.pid} caught {self.signal}'
        return f'Dunno why child {self.pid} terminated'


def redirect(stream, target):
    """
    Makes descriptor stream refer to the same open file as target.

    Raises:
        CommandError: If dup2() fails
    """
    try:
        os.dup2(target, stream)
    except OSError as e:
        raise CommandError(f'dup2({target}, {stream}): {e}') from e


def exec_command(conn, argv):
    """
    Replaces the current process with argv, talking over conn.

    The connection becomes standard input and standard output; the
    original descriptor is closed afterwards. SIGPIPE, ignored by the
    interpreter, is restored to its default for the new program.

    This only returns by raising.

    Raises:
        CommandError: If the streams cannot be redirected or argv cannot
            be executed
    """
    fd = conn.fileno()
    redirect(0, fd)
    redirect(1, fd)
    conn.close()

    signal.signal(signal.SIGPIPE, signal.SIG_DFL)
    try:
        os.execvp(argv[0], list(argv))
    except OSError as e:
        raise CommandError(f'execvp({argv[0]}): {e}') from e


def spawn(conn, argv):
    """
    Forks a child running argv wired to conn and returns its pid.

    The child never returns from this function. The caller still owns
    its copy of conn and should close it right away.
    """
    try:
        pid = os.fork()
    except OSError as e:
        raise CommandError(f'fork: {e}') from e

    if pid == 0:
        try:
            exec_command(conn, argv)
        except CommandError as e:
            logger.error(str(e))
        finally:
            os._exit(1)

    logger.info(f'Connection {conn.fileno()} delegated to process {pid}')
    return pid


def reap():
    """
    Collects every already terminated child without blocking.

    Returns:
        list: ChildExit records, possibly empty

    Note:
        Having no children at all is not an error. Other waitpid()
        failures are logged and end the current sweep.
    """
    exits = []
    while True:
        try:
            pid, status = os.waitpid(-1, os.WNOHANG)
        except ChildProcessError:
            break
        except OSError as e:
            logger.warning(f'waitpid: {e}')
            break

        if pid == 0:
            break

        if os.WIFEXITED(status):
            child = ChildExit(pid, code=os.WEXITSTATUS(status))
        elif os.WIFSIGNALED(status):
            child = ChildExit(pid, signal=os.WTERMSIG(status))
        else:
            child = ChildExit(pid)
        logger.info(child.describe())
        exits.append(child)

    return exits
