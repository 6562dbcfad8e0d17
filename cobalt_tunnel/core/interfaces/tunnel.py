"""
Tunnel service interfaces.

This module defines the contracts between the tunnel manager, the SSH
session it establishes and the handle it returns to callers.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

from ..domain.models import ForwardTarget, RemoteDescriptor
from .lifecycle import IClosable, IHealthCheckable


class ISession(ABC):
    """Authenticated SSH connection shared by every forwarder of a tunnel."""

    @abstractmethod
    async def open_channel(
        self,
        target: ForwardTarget,
        originator: Tuple[str, int]
    ) -> Tuple[Any, Any]:
        """
        Open a direct-tcpip channel to the target.

        Args:
            target: Destination reached from the server
            originator: Address reported as the connection's origin

        Returns:
            Reader and writer for the channel

        Raises:
            ChannelOpenFailed: If the server refuses or the transport fails
        """
        pass

    @abstractmethod
    def acquire(self) -> None:
        """Take a reference on the session."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Drop a reference; the last release closes the session."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the session regardless of outstanding references."""
        pass

    @abstractmethod
    async def wait_closed(self) -> None:
        """Wait for the underlying transport to shut down."""
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Whether the session has been closed."""
        pass


class ISessionEstablisher(ABC):
    """Dials, handshakes and authenticates an SSH session."""

    @abstractmethod
    async def establish(
        self,
        remote: RemoteDescriptor,
        connect_timeout: Optional[float] = None
    ) -> ISession:
        """
        Establish an authenticated session.

        Raises:
            ConnectTimeout: If the TCP dial exceeds connect_timeout
            AuthError: If the key cannot be parsed or the server rejects us
            TransportError: On any other I/O or protocol failure
        """
        pass


class ITunnelHandle(IClosable, IHealthCheckable):
    """Caller-owned handle of a running tunnel."""

    @property
    @abstractmethod
    def local_port(self) -> int:
        """Loopback port accepting tunnel clients."""
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Whether close() has been called."""
        pass


class ITunnelManager(ABC):
    """Creates tunnels."""

    @abstractmethod
    async def create(
        self,
        remote: RemoteDescriptor,
        forward_target: ForwardTarget,
        connect_timeout: Optional[float] = None
    ) -> ITunnelHandle:
        """
        Create a tunnel and return its handle.

        Args:
            remote: SSH server, user and identity
            forward_target: Destination reached through the server
            connect_timeout: Dial timeout in seconds; None uses the config

        Returns:
            Handle of the running tunnel

        Raises:
            TunnelError: Any setup failure; nothing is left running
        """
        pass
