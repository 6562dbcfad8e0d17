"""
Exception hierarchy for the tunnel core.

Setup-time errors (everything raised out of ``TunnelManager.create``) are
fatal to tunnel creation. ``ChannelOpenFailed`` and ``ListenerFatal`` are
per-connection and per-listener diagnostics that are logged rather than
surfaced to the caller.
"""

from enum import Enum
from typing import Optional


class TunnelError(Exception):
    """Base exception class for all tunnel-related errors"""
    pass


class ConnectTimeout(TunnelError):
    """Exception raised when the TCP dial does not complete in time"""

    def __init__(self, message: str, timeout: Optional[float] = None):
        self.timeout = timeout
        super().__init__(message)


class TransportError(TunnelError):
    """Exception raised for low-level I/O failures during setup"""
    pass


class AuthFailure(Enum):
    """Reasons an authentication attempt can fail."""
    KEY_PARSE_FAILED = "key_parse_failed"
    REJECTED = "rejected"


class AuthError(TunnelError):
    """Exception raised for authentication errors"""

    def __init__(self, message: str, reason: AuthFailure):
        self.reason = reason
        super().__init__(message)


class ChannelOpenFailed(TunnelError):
    """Exception raised when a forwarding channel cannot be opened"""

    def __init__(self, message: str, host: Optional[str] = None, port: Optional[int] = None):
        self.host = host
        self.port = port
        super().__init__(message)


class ListenerFatal(TunnelError):
    """Accept-level failure that ends the tunnel's ability to accept"""
    pass


class StartupFailed(TunnelError):
    """Exception raised when the accept task fails to acknowledge start"""
    pass
