"""
SSH session establishment for the Cobalt Tunnel application.

This module dials the SSH server, runs the asyncssh handshake over the
dialed socket and authenticates with the caller's identity. The resulting
session is shared by every connection forwarded through one tunnel.
"""

import asyncio
import socket
from typing import Any, Dict, Optional, Tuple

import asyncssh
from loguru import logger

from ...core.domain.models import ForwardTarget, RemoteDescriptor
from ...core.exceptions import (
    AuthError, AuthFailure, ChannelOpenFailed, ConnectTimeout, TransportError
)
from ...core.interfaces.tunnel import ISession, ISessionEstablisher
from ..config.models import SSHTunnelConfig


class SSHSession(ISession):
    """
    Authenticated SSH connection shared by the tasks of one tunnel.

    Holders take a reference with ``acquire`` and drop it with ``release``;
    the connection is closed when the last reference goes away.
    """

    def __init__(self, connection: asyncssh.SSHClientConnection, label: str):
        self._connection = connection
        self._label = label
        self._refs = 0
        self._closed = False

    @property
    def label(self) -> str:
        return self._label

    @property
    def refs(self) -> int:
        """Number of outstanding references."""
        return self._refs

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def open_channel(
        self,
        target: ForwardTarget,
        originator: Tuple[str, int]
    ) -> Tuple[asyncssh.SSHReader, asyncssh.SSHWriter]:
        """Open a direct-tcpip channel to the target."""
        if self._closed:
            raise ChannelOpenFailed(
                f"{self._label} session is closed", target.host, target.port)

        orig_host, orig_port = originator

        try:
            return await self._connection.open_connection(
                target.host, target.port, orig_host, orig_port
            )
        except (asyncssh.Error, OSError) as e:
            raise ChannelOpenFailed(
                f"{self._label} failed to open channel to {target}: {e}",
                target.host, target.port
            ) from e

    def acquire(self) -> None:
        if self._closed:
            raise TransportError(f"{self._label} session is closed")

        self._refs += 1

    def release(self) -> None:
        if self._refs > 0:
            self._refs -= 1

        if self._refs == 0:
            self.close()

    def close(self) -> None:
        if self._closed:
            return

        self._closed = True
        self._connection.close()
        logger.debug(f"{self._label} ssh session closed")

    async def wait_closed(self) -> None:
        await self._connection.wait_closed()


class SessionEstablisher(ISessionEstablisher):
    """
    Establishes authenticated SSH sessions.

    ``connect_timeout`` bounds only the TCP dial. The handshake and
    authentication are bounded by asyncssh's ``login_timeout`` and the
    established session is kept alive with keepalive requests.
    """

    def __init__(self, config: Optional[SSHTunnelConfig] = None):
        """
        Initialize session establisher.

        Args:
            config: Tunnel transport configuration
        """
        self._config = config or SSHTunnelConfig()

    async def establish(
        self,
        remote: RemoteDescriptor,
        connect_timeout: Optional[float] = None
    ) -> SSHSession:
        """Dial, handshake and authenticate against the remote server."""
        timeout = connect_timeout if connect_timeout is not None else self._config.connect_timeout

        sock = await self._connect_socket(remote, timeout)

        try:
            auth_kwargs = self._auth_kwargs(remote)
        except AuthError:
            sock.close()
            raise

        connect_kwargs: Dict[str, Any] = self._config.to_asyncssh_kwargs()
        connect_kwargs.update(auth_kwargs)

        try:
            connection = await asyncssh.connect(
                remote.host,
                remote.port,
                sock=sock,
                username=remote.user,
                config=[],
                agent_path=None,
                **connect_kwargs
            )
        except asyncssh.PermissionDenied as e:
            sock.close()
            raise AuthError(
                f"{remote.label} authentication failed: {e.reason}",
                AuthFailure.REJECTED
            ) from e
        except asyncio.TimeoutError as e:
            sock.close()
            raise TransportError(f"{remote.label} ssh handshake timed out") from e
        except (asyncssh.Error, OSError) as e:
            sock.close()
            raise TransportError(f"{remote.label} ssh handshake failed: {e}") from e

        logger.info(f"{remote.label} ssh session established")
        return SSHSession(connection, remote.label)

    async def _connect_socket(self, remote: RemoteDescriptor, timeout: float) -> socket.socket:
        try:
            return await asyncio.wait_for(self._dial(remote.host, remote.port), timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"{remote.label} ssh connection timeout after {timeout}s")
            raise ConnectTimeout(
                f"{remote.label} ssh connection timeout", timeout) from e
        except OSError as e:
            raise TransportError(f"{remote.label} connect failed: {e}") from e

    async def _dial(self, host: str, port: int) -> socket.socket:
        """Open a non-blocking TCP socket to the first reachable address."""
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)

        last_error: Optional[OSError] = None

        for family, sock_type, proto, _, address in infos:
            sock = socket.socket(family, sock_type, proto)
            try:
                sock.setblocking(False)
                await loop.sock_connect(sock, address)
            except OSError as e:
                sock.close()
                last_error = e
                continue
            except asyncio.CancelledError:
                sock.close()
                raise

            return sock

        raise last_error or OSError(f"No address found for {host}:{port}")

    def _auth_kwargs(self, remote: RemoteDescriptor) -> Dict[str, Any]:
        """Translate the identity into asyncssh authentication options."""
        identity = remote.identity

        # No identity: offer nothing and let the server decide
        if identity is None:
            return {'client_keys': None, 'password': None, 'gss_host': None}

        if identity.key is not None:
            try:
                key_pair = asyncssh.import_private_key(
                    identity.key.key, identity.key.passphrase)
            except ValueError as e:
                logger.error(f"{remote.label} decode ssh key failed: {e}")
                raise AuthError(
                    f"{remote.label} failed to parse ssh private key",
                    AuthFailure.KEY_PARSE_FAILED
                ) from e

            return {
                'client_keys': [key_pair],
                'password': None,
                'gss_host': None,
                'preferred_auth': 'publickey',
            }

        return {
            'client_keys': None,
            'password': identity.password,
            'gss_host': None,
            'preferred_auth': 'keyboard-interactive,password',
        }
