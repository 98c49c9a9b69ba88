"""
Address resolution for the TCP relay.

Turns a host/service pair into the ordered list of stream socket
addresses that the binder and connector try in turn.
"""

import socket
import logging
from typing import List, NamedTuple, Tuple

from tcprelay.config import DEFAULT_HOST
from tcprelay.errors import ResolutionError

logger = logging.getLogger(__name__)


class AddressCandidate(NamedTuple):
    """One resolved address, as returned by getaddrinfo()."""

    family: int
    type: int
    proto: int
    sockaddr: tuple


def resolve(host, service):
    """
    Resolves host and service into candidate socket addresses.

    Both IPv4 and IPv6 results are accepted; only stream sockets are
    requested. The resolver's order is preserved.

    Args:
        host: Host name or numeric address, None or empty for localhost
        service: Port number or service name

    Returns:
        list: AddressCandidate entries in resolver order

    Raises:
        ResolutionError: If the pair cannot be resolved
    """
    host = host or DEFAULT_HOST
    try:
        infos = socket.getaddrinfo(host, service, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ResolutionError(f'getaddrinfo({host}, {service}): {e.strerror or e}') from e
    except UnicodeError as e:
        raise ResolutionError(f'getaddrinfo({host}, {service}): {e}') from e

    candidates = [AddressCandidate(family, socktype, proto, sockaddr)
                  for family, socktype, proto, _, sockaddr in infos]
    logger.debug(f'Resolved {host} {service} to {len(candidates)} candidate(s)')
    return candidates


def address_text(family, sockaddr) -> Tuple[str, int]:
    """
    Renders an IPv4 or IPv6 socket address as numeric text and port.

    Args:
        family: Address family of sockaddr
        sockaddr: Address tuple as used by the socket module

    Returns:
        tuple: (numeric address, port)

    Raises:
        ValueError: If the family is neither AF_INET nor AF_INET6
    """
    if family not in (socket.AF_INET, socket.AF_INET6):
        raise ValueError(f'Unsupported address family: {family}')

    # Drop an IPv6 zone suffix such as fe80::1%eth0 before packing
    host = sockaddr[0].split('%', 1)[0]
    packed = socket.inet_pton(family, host)
    return socket.inet_ntop(family, packed), sockaddr[1]


def describe(family, sockaddr):
    """Formats an address for log messages, e.g. '127.0.0.1 port 8080'."""
    text, port = address_text(family, sockaddr)
    return f'{text} port {port}'


def describe_candidates(candidates: List[AddressCandidate]):
    return ', '.join(describe(c.family, c.sockaddr) for c in candidates)
