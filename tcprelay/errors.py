"""
Exception taxonomy for the TCP relay.

Every fatal condition is raised as a subclass of TcpRelayError and ends
up in main(), which logs it and exits with a non-zero status.
"""


class TcpRelayError(Exception):
    """Base class for all relay errors."""


class ConfigError(TcpRelayError):
    """Inconsistent or malformed configuration."""


class ResolutionError(TcpRelayError):
    """The host/service pair could not be resolved."""


class BindError(TcpRelayError):
    """No candidate address could be bound and listened on."""


class ConnectError(TcpRelayError):
    """No candidate address accepted a connection."""


class TransferError(TcpRelayError):
    """A read or write failed while relaying an established session."""


class CommandError(TcpRelayError):
    """The handler command could not be started."""
