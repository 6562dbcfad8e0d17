"""
asyncssh-backed session, accept loop and connection forwarding.
"""

from .accept_loop import AcceptLoop
from .forwarder import ConnectionForwarder
from .session import SessionEstablisher, SSHSession

__all__ = [
    "AcceptLoop",
    "ConnectionForwarder",
    "SessionEstablisher",
    "SSHSession",
]
