"""
Configuration module for the TCP relay.

This module holds the tunable constants used across the package and the
immutable Config record handed from the command line layer to the core.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from tcprelay.errors import ConfigError

# Host used when none is given on the command line
DEFAULT_HOST = 'localhost'

# Relay buffer size in bytes when -b is not given
DEFAULT_BUFFER_SIZE = 1024

# Chunk size for draining stdin while the server waits for a client
DISCARD_BUFFER_SIZE = 512

# Backlog passed to listen(); the OS queues at most one pending connection
LISTEN_BACKLOG = 0

# Logging configuration
LOG_LEVEL = getattr(logging, os.environ.get('TCPRELAY_LOG_LEVEL', 'INFO').upper(), logging.INFO)
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass(frozen=True)
class Config:
    """
    Validated settings for one run of the relay.

    Attributes:
        server: True for the listening role, False for the connecting role
        allow_half: Keep relaying in one direction after the other closed
        service: Port number or service name
        host: Host name or numeric address
        buffer_size: Relay buffer size in bytes
        command: Handler argument vector, or None to relay in-process

    Raises:
        ConfigError: If the combination of settings is inconsistent
    """

    server: bool = False
    allow_half: bool = True
    service: str = ''
    host: str = DEFAULT_HOST
    buffer_size: int = DEFAULT_BUFFER_SIZE
    command: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if not self.service:
            raise ConfigError('No service given.')
        if self.buffer_size <= 0:
            raise ConfigError(f'Invalid buffer size: {self.buffer_size}')
        if self.command is not None:
            if not self.command or not self.command[0]:
                raise ConfigError('Empty command.')
            if not self.allow_half:
                raise ConfigError('Forcing full duplex (-q) not relevant with command.')
