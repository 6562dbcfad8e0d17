"""
Tunnel manager for the Cobalt Tunnel application.

This module ties the SSH session, the loopback listener and the accept loop
together and hands the caller a ``TunnelHandle`` whose disposal shuts the
whole tunnel down.
"""

import asyncio
import socket
import threading
import warnings
from typing import Any, Dict, Optional, Tuple

from loguru import logger

from ..core.domain.models import ForwardTarget, RemoteDescriptor
from ..core.exceptions import StartupFailed, TransportError
from ..core.interfaces.tunnel import ISession, ISessionEstablisher, ITunnelHandle, ITunnelManager
from ..core.services.cancellation import CancellationBus, CancellationSender
from ..infrastructure.config.models import SSHTunnelConfig
from ..infrastructure.ssh.accept_loop import AcceptLoop
from ..infrastructure.ssh.session import SessionEstablisher

LOOPBACK_HOST = "127.0.0.1"


class TunnelHandle(ITunnelHandle):
    """
    Caller-owned handle of a running tunnel.

    ``close`` fires the tunnel's cancellation signal exactly once and may be
    called from any thread. ``wait_closed`` waits for the accept loop and all
    live connections to finish, cancelling stragglers after the grace period.
    Dropping a handle that was never closed emits a ``ResourceWarning`` and
    closes it.
    """

    def __init__(
        self,
        local_port: int,
        sender: CancellationSender,
        accept_loop: AcceptLoop,
        accept_task: "asyncio.Task[None]",
        session: ISession,
        remote_label: str,
        target: ForwardTarget,
        grace_period: float,
        loop: asyncio.AbstractEventLoop
    ):
        self._local_port = local_port
        self._sender = sender
        self._accept_loop = accept_loop
        self._accept_task = accept_task
        self._session = session
        self._remote_label = remote_label
        self._target = target
        self._grace_period = grace_period
        self._loop = loop

        self._close_lock = threading.Lock()
        self._close_requested = False

    @property
    def local_port(self) -> int:
        return self._local_port

    @property
    def address(self) -> Tuple[str, int]:
        """Loopback address clients connect to."""
        return (LOOPBACK_HOST, self._local_port)

    @property
    def target(self) -> ForwardTarget:
        return self._target

    @property
    def is_closed(self) -> bool:
        return self._close_requested

    @property
    def active_connections(self) -> int:
        """Number of connections currently being forwarded."""
        return len(self._accept_loop.connections)

    def close(self) -> None:
        """Fire the cancellation signal; later calls are no-ops."""
        with self._close_lock:
            if self._close_requested:
                return
            self._close_requested = True

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._send_abort()
            return

        try:
            self._loop.call_soon_threadsafe(self._send_abort)
        except RuntimeError as e:
            logger.warning(f"{self._remote_label} ssh send abort error: {e}")

    def _send_abort(self) -> None:
        if self._sender.fire():
            logger.debug(f"{self._remote_label} ssh send abort success")
        logger.debug(f"{self._remote_label} drop ssh tunnel")

    async def wait_closed(self, timeout: Optional[float] = None) -> None:
        """
        Wait for the tunnel to shut down after ``close``.

        Args:
            timeout: Grace period in seconds; None uses the configured one
        """
        if not self._close_requested:
            raise RuntimeError("Tunnel must be closed before waiting for it")

        grace = timeout if timeout is not None else self._grace_period
        deadline = self._loop.time() + grace

        # no new connections once the accept loop is gone
        await asyncio.wait({self._accept_task}, timeout=grace)

        tasks = {self._accept_task, *self._accept_loop.connections}
        remaining = max(0.0, deadline - self._loop.time())
        _, pending = await asyncio.wait(tasks, timeout=remaining)

        if pending:
            logger.warning(
                f"{self._remote_label} {len(pending)} task(s) still running after "
                f"{grace}s, cancelling")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        self._session.close()
        await self._session.wait_closed()

    async def aclose(self) -> None:
        """Close the tunnel and wait for it to shut down."""
        self.close()
        await self.wait_closed()

    async def __aenter__(self) -> 'TunnelHandle':
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __del__(self) -> None:
        # dropping an open handle tears the tunnel down
        if getattr(self, "_close_requested", True):
            return

        warnings.warn(
            f"unclosed tunnel {self._remote_label} on local port {self._local_port}",
            ResourceWarning,
            source=self
        )
        self.close()

    def check_health(self) -> Dict[str, Any]:
        """Report tunnel status."""
        if self._close_requested:
            status = "closed"
        elif self._accept_loop.accepting:
            status = "accepting"
        else:
            status = "stopped"

        listener_error = self._accept_loop.listener_error

        return {
            'healthy': status == "accepting",
            'status': status,
            'details': {
                'remote': self._remote_label,
                'target': str(self._target),
                'local_port': self._local_port,
                'active_connections': self.active_connections,
                'accepted_total': self._accept_loop.accepted_total,
                'failed_total': self._accept_loop.failed_total,
                'session_closed': self._session.is_closed,
                'listener_error': str(listener_error) if listener_error else None,
            }
        }


class TunnelManager(ITunnelManager):
    """
    Creates SSH tunnels.

    A tunnel is one authenticated SSH session plus a loopback listener whose
    connections are each forwarded over their own direct-tcpip channel.
    """

    def __init__(
        self,
        config: Optional[SSHTunnelConfig] = None,
        establisher: Optional[ISessionEstablisher] = None
    ):
        """
        Initialize tunnel manager.

        Args:
            config: Tunnel transport configuration
            establisher: Session establisher; defaults to an asyncssh one
        """
        self._config = config or SSHTunnelConfig()
        self._establisher = establisher or SessionEstablisher(self._config)

    async def create(
        self,
        remote: RemoteDescriptor,
        forward_target: ForwardTarget,
        connect_timeout: Optional[float] = None
    ) -> TunnelHandle:
        """Establish the session, bind the listener and start accepting."""
        session = await self._establisher.establish(remote, connect_timeout)

        # reference owned by the accept loop
        session.acquire()

        try:
            listener = self._bind_listener()
        except OSError as e:
            session.release()
            raise TransportError(f"{remote.label} failed to bind local listener: {e}") from e

        local_port = listener.getsockname()[1]

        bus = CancellationBus()
        sender = bus.sender()
        accept_loop = AcceptLoop(
            listener,
            session,
            forward_target,
            bus.subscribe(),
            label=remote.label,
            buffer_size=self._config.buffer_size
        )

        logger.info(
            f"{remote.label} create ssh forward accept handler, local port is {local_port}")

        loop = asyncio.get_running_loop()
        ready: "asyncio.Future[None]" = loop.create_future()
        accept_task = loop.create_task(accept_loop.run(ready))

        try:
            await asyncio.wait({ready, accept_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._abort_startup(sender, accept_task, listener, session)
            raise

        if not ready.done():
            await self._abort_startup(sender, accept_task, listener, session)
            raise StartupFailed(f"{remote.label} accept task exited before start")

        return TunnelHandle(
            local_port,
            sender,
            accept_loop,
            accept_task,
            session,
            remote.label,
            forward_target,
            self._config.shutdown_grace_period,
            loop
        )

    def _bind_listener(self) -> socket.socket:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((LOOPBACK_HOST, 0))
            listener.listen(socket.SOMAXCONN)
            listener.setblocking(False)
        except OSError:
            listener.close()
            raise
        return listener

    async def _abort_startup(
        self,
        sender: CancellationSender,
        accept_task: "asyncio.Task[None]",
        listener: socket.socket,
        session: ISession
    ) -> None:
        """Tear down everything a failed create started."""
        sender.fire()
        accept_task.cancel()

        results = await asyncio.gather(accept_task, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.opt(exception=result).error("ssh accept task failed during startup")

        listener.close()
        session.close()
        await session.wait_closed()


async def open_tunnel(
    remote: RemoteDescriptor,
    forward_target: ForwardTarget,
    config: Optional[SSHTunnelConfig] = None,
    connect_timeout: Optional[float] = None
) -> TunnelHandle:
    """
    Open a tunnel with a default manager.

    Args:
        remote: SSH server, user and identity
        forward_target: Destination reached through the server
        config: Tunnel transport configuration
        connect_timeout: Dial timeout in seconds; None uses the config

    Returns:
        Handle of the running tunnel
    """
    return await TunnelManager(config).create(remote, forward_target, connect_timeout)
