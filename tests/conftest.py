"""
Shared fixtures: an in-process asyncssh server allowing direct-tcpip and a
local echo server used as the forward target.
"""

import asyncio
import socket
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Callable, List, Optional, Tuple

import asyncssh
import pytest

from cobalt_tunnel.core.domain.models import ForwardTarget, Identity, RemoteDescriptor
from cobalt_tunnel.core.exceptions import ChannelOpenFailed, TransportError
from cobalt_tunnel.core.interfaces.tunnel import ISession
from cobalt_tunnel.infrastructure.config.models import SSHTunnelConfig

SSH_USER = "tunnel"
SSH_PASSWORD = "correct horse"
KEY_PASSPHRASE = "hunter2"


@dataclass
class SSHServerState:
    """Knobs and records shared with the test SSH server."""
    host: str = "127.0.0.1"
    port: int = 0
    authorized_keys: List[str] = field(default_factory=list)
    refuse_next: int = 0
    requests: List[Tuple[str, int, str, int]] = field(default_factory=list)
    connections: List[Any] = field(default_factory=list)


class _TunnelTestServer(asyncssh.SSHServer):
    """SSH server accepting one password and a set of public keys."""

    def __init__(self, state: SSHServerState):
        self._state = state
        self._conn: Optional[asyncssh.SSHServerConnection] = None

    def connection_made(self, conn: asyncssh.SSHServerConnection) -> None:
        self._conn = conn
        self._state.connections.append(conn)

    def begin_auth(self, username: str) -> bool:
        if self._state.authorized_keys and self._conn is not None:
            self._conn.set_authorized_keys(
                asyncssh.import_authorized_keys("\n".join(self._state.authorized_keys)))
        return True

    def password_auth_supported(self) -> bool:
        return True

    def validate_password(self, username: str, password: str) -> bool:
        return username == SSH_USER and password == SSH_PASSWORD

    def connection_requested(self, dest_host: str, dest_port: int,
                             orig_host: str, orig_port: int) -> bool:
        self._state.requests.append((dest_host, dest_port, orig_host, orig_port))

        if self._state.refuse_next > 0:
            self._state.refuse_next -= 1
            return False

        return True


@dataclass
class EchoServer:
    host: str
    port: int
    writers: List[asyncio.StreamWriter] = field(default_factory=list)

    @property
    def target(self) -> ForwardTarget:
        return ForwardTarget(self.host, self.port)


def free_port() -> int:
    """Return a loopback port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def read_exactly(reader: asyncio.StreamReader, size: int, timeout: float = 5.0) -> bytes:
    return await asyncio.wait_for(reader.readexactly(size), timeout)


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll until the predicate holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FakeSession(ISession):
    """In-memory session that opens plain TCP connections as channels."""

    def __init__(self) -> None:
        self.refs = 0
        self.refuse_next = 0
        self.originators: List[Tuple[str, int]] = []
        self.channels: List[asyncio.StreamWriter] = []
        self._closed = False

    async def open_channel(self, target: ForwardTarget,
                           originator: Tuple[str, int]) -> Tuple[Any, Any]:
        self.originators.append(originator)

        if self.refuse_next > 0:
            self.refuse_next -= 1
            raise ChannelOpenFailed("administratively prohibited", target.host, target.port)

        reader, writer = await asyncio.open_connection(target.host, target.port)
        self.channels.append(writer)
        return reader, writer

    def acquire(self) -> None:
        if self._closed:
            raise TransportError("session is closed")
        self.refs += 1

    def release(self) -> None:
        if self.refs > 0:
            self.refs -= 1
        if self.refs == 0:
            self.close()

    def close(self) -> None:
        self._closed = True

    async def wait_closed(self) -> None:
        pass

    @property
    def is_closed(self) -> bool:
        return self._closed


@pytest.fixture
def client_key() -> asyncssh.SSHKey:
    """Unencrypted client key authorized on the test server."""
    return asyncssh.generate_private_key("ssh-ed25519")


@pytest.fixture
def encrypted_key() -> asyncssh.SSHKey:
    """Client key exported with a passphrase and authorized on the server."""
    return asyncssh.generate_private_key("ecdsa-sha2-nistp256")


@pytest.fixture
async def ssh_server(client_key: asyncssh.SSHKey,
                     encrypted_key: asyncssh.SSHKey) -> AsyncGenerator[SSHServerState, None]:
    """Start an asyncssh server on an ephemeral loopback port."""
    state = SSHServerState()
    state.authorized_keys = [
        client_key.export_public_key().decode("ascii").strip(),
        encrypted_key.export_public_key().decode("ascii").strip(),
    ]

    host_key = asyncssh.generate_private_key("ssh-ed25519")
    acceptor = await asyncssh.listen(
        state.host,
        0,
        server_factory=lambda: _TunnelTestServer(state),
        server_host_keys=[host_key]
    )
    state.port = acceptor.sockets[0].getsockname()[1]

    yield state

    for conn in state.connections:
        conn.close()
    acceptor.close()
    await acceptor.wait_closed()


@pytest.fixture
async def echo_server() -> AsyncGenerator[EchoServer, None]:
    """Start a TCP echo server acting as the forward target."""
    echo = EchoServer("127.0.0.1", 0)

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        echo.writers.append(writer)
        try:
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, echo.host, 0)
    echo.port = server.sockets[0].getsockname()[1]

    yield echo

    for writer in echo.writers:
        writer.close()
    server.close()
    await server.wait_closed()


@pytest.fixture
def tunnel_config() -> SSHTunnelConfig:
    """Config with short timeouts for tests."""
    return SSHTunnelConfig(
        connect_timeout=5.0,
        login_timeout=5.0,
        shutdown_grace_period=2.0
    )


@pytest.fixture
def password_remote(ssh_server: SSHServerState) -> RemoteDescriptor:
    return RemoteDescriptor(
        host=ssh_server.host,
        port=ssh_server.port,
        user=SSH_USER,
        identity=Identity.from_password(SSH_PASSWORD)
    )


@pytest.fixture
def key_remote(ssh_server: SSHServerState, client_key: asyncssh.SSHKey) -> RemoteDescriptor:
    return RemoteDescriptor(
        host=ssh_server.host,
        port=ssh_server.port,
        user=SSH_USER,
        identity=Identity.from_key(client_key.export_private_key())
    )


@pytest.fixture
async def fake_session() -> AsyncGenerator[FakeSession, None]:
    session = FakeSession()

    yield session

    for writer in session.channels:
        writer.close()
