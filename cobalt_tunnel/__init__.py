"""
Cobalt Tunnel - local TCP endpoints tunnelled through a single SSH session.

This package establishes an authenticated SSH session to a bastion host and
exposes a loopback port whose connections are forwarded to a fixed target
reachable from the bastion's network.
"""

__version__ = "0.1.0"

from .application.tunnel_manager import TunnelHandle, TunnelManager, open_tunnel
from .core.domain.models import ForwardTarget, Identity, PrivateKey, RemoteDescriptor
from .core.exceptions import (
    AuthError, AuthFailure, ChannelOpenFailed, ConnectTimeout, ListenerFatal,
    StartupFailed, TransportError, TunnelError
)
from .infrastructure.config.models import ApplicationConfig, LoggingConfig, SSHTunnelConfig

__all__ = [
    "TunnelHandle",
    "TunnelManager",
    "open_tunnel",
    "ForwardTarget",
    "Identity",
    "PrivateKey",
    "RemoteDescriptor",
    "TunnelError",
    "ConnectTimeout",
    "TransportError",
    "AuthError",
    "AuthFailure",
    "ChannelOpenFailed",
    "ListenerFatal",
    "StartupFailed",
    "ApplicationConfig",
    "LoggingConfig",
    "SSHTunnelConfig",
]
