"""
Command line parsing for the TCP relay.

Usage:
    tcprelay [-s] [-q] [-bSIZE] PORT [HOST] [-- COMMAND [ARG...]]
"""

import re
import argparse

from tcprelay.config import Config, DEFAULT_BUFFER_SIZE, DEFAULT_HOST
from tcprelay.errors import ConfigError

HELP = f"""\
tcprelay - pass bytes between a TCP connection and stdin/stdout

usage: tcprelay [-s] [-q] [-bSIZE] PORT [HOST] [-- COMMAND [ARG...]]

Connect to HOST (default: {DEFAULT_HOST}) on PORT, or with -s listen
there, and relay the connection over standard input and output.

  -s        Act as server: listen on HOST and PORT and serve clients
            one after another.
  -q        Quit as soon as either direction is closed, instead of
            relaying the open direction until it closes, too.
  -bSIZE    Use a transfer buffer of SIZE bytes (default: {DEFAULT_BUFFER_SIZE}).
            SIZE may carry a unit: k, ki, M, Mi, G, Gi.
  -- COMMAND [ARG...]
            Run COMMAND with the connection as its standard input and
            output. A server forks one process per client.

Diagnostics are written to standard error. Send SIGINT or SIGTERM to
stop.
"""

# Multipliers for the -b unit suffix
UNITS = {
    '': 1,
    'k': 1000,
    'ki': 1024,
    'M': 1000000,
    'Mi': 1048576,
    'G': 1000000000,
    'Gi': 1073741824,
}


def parse_size(text):
    """
    Parses a byte count with an optional unit suffix, e.g. '64ki'.

    Raises:
        argparse.ArgumentTypeError: On missing digits or unknown unit
    """
    digits, unit = re.match(r'(\d*)(.*)\Z', text, re.DOTALL).groups()
    if not digits:
        raise argparse.ArgumentTypeError(f'No digits in `{text}`')
    if unit not in UNITS:
        raise argparse.ArgumentTypeError(f'Invalid unit: `{unit}` following `{digits}`')
    return int(digits) * UNITS[unit]


def build_parser():
    parser = argparse.ArgumentParser(
        prog='tcprelay',
        usage='%(prog)s [-s] [-q] [-bSIZE] PORT [HOST] [-- COMMAND [ARG...]]',
        add_help=False,
    )
    parser.add_argument('-s', dest='server', action='store_true')
    parser.add_argument('-q', dest='allow_half', action='store_false')
    parser.add_argument('-b', dest='buffer_size', type=parse_size, default=None)
    parser.add_argument('service')
    parser.add_argument('host', nargs='?', default=DEFAULT_HOST)
    return parser


def parse_args(argv):
    """
    Builds a Config from command line arguments.

    Args:
        argv: Arguments without the program name

    Returns:
        Config, or None when no arguments were given and the help text
        should be shown instead

    Raises:
        ConfigError: On inconsistent options
        SystemExit: On syntax errors, via argparse
    """
    if not argv:
        return None

    argv = list(argv)
    command = None
    if '--' in argv:
        split = argv.index('--')
        command = tuple(argv[split + 1:])
        argv = argv[:split]

    args = build_parser().parse_args(argv)

    # -b0 counts as not given
    if command is not None and args.buffer_size:
        raise ConfigError('Buffer size (-b) not relevant with command.')

    return Config(
        server=args.server,
        allow_half=args.allow_half,
        service=args.service,
        host=args.host,
        buffer_size=args.buffer_size or DEFAULT_BUFFER_SIZE,
        command=command,
    )
