"""
Main entry point for the TCP relay.

This module parses the command line, initializes logging and runs the
configured role until it finishes or a terminating signal arrives.

Usage:
    python -m tcprelay [-s] [-q] [-bSIZE] PORT [HOST] [-- COMMAND [ARG...]]
"""

import logging
import sys

from tcprelay.cli import HELP, parse_args
from tcprelay.client import run_client
from tcprelay.config import LOG_FORMAT, LOG_LEVEL
from tcprelay.errors import TcpRelayError
from tcprelay.server import run_server
from tcprelay.signals import SignalGate


def setup_logging():
    """
    Configure logging for the application.

    Log records go to standard error, which keeps standard output free
    for relayed bytes. Level and format come from config.py.
    """
    logging.basicConfig(
        level=LOG_LEVEL,
        format=LOG_FORMAT
    )


def main(argv=None):
    """
    Main function of the relay.

    This function:
    1. Sets up logging
    2. Parses the command line into a Config
    3. Installs the signal gate and runs the server or client role

    Returns:
        int: Process exit status
    """
    if argv is None:
        argv = sys.argv[1:]

    # Step 1: Configure logging
    setup_logging()
    logger = logging.getLogger(__name__)

    # Step 2: Parse the command line
    try:
        config = parse_args(argv)
    except TcpRelayError as e:
        logger.error(str(e))
        return 1

    if config is None:
        print(HELP)
        return 0

    # Step 3: Run the role until done or interrupted
    try:
        with SignalGate() as gate:
            if config.server:
                run_server(config, gate)
            else:
                run_client(config, gate)
    except TcpRelayError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
