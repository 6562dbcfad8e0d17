"""
Accept loop for the local end of a tunnel.

The loop owns the bound loopback listener. It accepts client connections
and hands each one to its own ``ConnectionForwarder`` task, racing every
accept against the tunnel's cancellation signal.
"""

import asyncio
import socket
from typing import Dict, FrozenSet, Optional, Set, Tuple

from loguru import logger

from ...core.domain.models import ForwardTarget
from ...core.exceptions import ListenerFatal, TransportError
from ...core.interfaces.tunnel import ISession
from ...core.services.cancellation import CancellationToken
from .forwarder import DEFAULT_BUFFER_SIZE, ConnectionForwarder


class AcceptLoop:
    """
    Background accept loop of one tunnel.

    The loop holds one reference on the session, handed over by the tunnel
    manager, and drops it when it exits. Each spawned forwarder takes its
    own reference, so live connections keep the session open after the loop
    has stopped.
    """

    def __init__(
        self,
        listener: socket.socket,
        session: ISession,
        target: ForwardTarget,
        cancel_token: CancellationToken,
        label: str = "",
        buffer_size: int = DEFAULT_BUFFER_SIZE
    ):
        self._listener = listener
        self._session = session
        self._target = target
        self._cancel_token = cancel_token
        self._label = label
        self._buffer_size = buffer_size

        self._connections: Dict["asyncio.Task[bool]", socket.socket] = {}
        self._not_started: Set["asyncio.Task[bool]"] = set()
        self._accepting = False
        self._listener_error: Optional[ListenerFatal] = None

        self.accepted_total = 0
        self.failed_total = 0

    @property
    def accepting(self) -> bool:
        """Whether the loop is currently accepting connections."""
        return self._accepting

    @property
    def connections(self) -> FrozenSet["asyncio.Task[bool]"]:
        """Live forwarder tasks."""
        return frozenset(self._connections)

    @property
    def listener_error(self) -> Optional[ListenerFatal]:
        """Listener failure that ended the loop, if any."""
        return self._listener_error

    async def run(self, ready: "asyncio.Future[None]") -> None:
        """
        Run the loop until cancellation or a listener failure.

        Args:
            ready: Startup acknowledgment, resolved before the first accept
        """
        if not ready.done():
            ready.set_result(None)

        self._accepting = True
        logger.debug(f"{self._label} ssh accept future start")

        try:
            await self._accept_until_cancelled()
        finally:
            self._accepting = False
            self._listener.close()
            self._session.release()
            logger.debug(f"{self._label} ssh proxy accept loop finished")

    async def _accept_until_cancelled(self) -> None:
        loop = asyncio.get_running_loop()
        aborted = asyncio.ensure_future(self._cancel_token.wait())
        accept: Optional["asyncio.Future[Tuple[socket.socket, object]]"] = None

        try:
            while True:
                accept = asyncio.ensure_future(loop.sock_accept(self._listener))
                done, _ = await asyncio.wait(
                    {accept, aborted}, return_when=asyncio.FIRST_COMPLETED)

                if aborted in done:
                    logger.debug(f"{self._label} ssh proxy accept task received abort event")
                    return

                try:
                    conn, _addr = accept.result()
                except OSError as e:
                    self._listener_error = ListenerFatal(
                        f"{self._label} ssh proxy listener error: {e}")
                    logger.warning(str(self._listener_error))
                    return

                accept = None
                if not self._spawn(conn):
                    return
        finally:
            aborted.cancel()
            if accept is not None:
                await self._discard_accept(accept)

    async def _discard_accept(self, accept: "asyncio.Future[Tuple[socket.socket, object]]") -> None:
        """Cancel a pending accept, closing a socket that raced in."""
        accept.cancel()
        await asyncio.gather(accept, return_exceptions=True)

        if accept.done() and not accept.cancelled() and accept.exception() is None:
            conn, _addr = accept.result()
            conn.close()

    def _spawn(self, conn: socket.socket) -> bool:
        """Start a forwarder task for an accepted socket."""
        try:
            self._session.acquire()
        except TransportError as e:
            conn.close()
            logger.warning(f"{self._label} stop accepting: {e}")
            return False

        self.accepted_total += 1

        task = asyncio.ensure_future(self._serve(conn))
        self._connections[task] = conn
        self._not_started.add(task)
        task.add_done_callback(self._on_connection_done)
        return True

    async def _serve(self, conn: socket.socket) -> bool:
        self._not_started.discard(asyncio.current_task())

        try:
            conn.setblocking(False)
            reader, writer = await asyncio.open_connection(sock=conn)
        except OSError as e:
            conn.close()
            self._session.release()
            logger.warning(f"{self._label} failed to set up local stream: {e}")
            return False
        except asyncio.CancelledError:
            conn.close()
            self._session.release()
            raise

        forwarder = ConnectionForwarder(
            self._session,
            self._target,
            reader,
            writer,
            self._cancel_token,
            label=self._label,
            buffer_size=self._buffer_size
        )
        return await forwarder.run()

    def _on_connection_done(self, task: "asyncio.Task[bool]") -> None:
        conn = self._connections.pop(task, None)

        if task.cancelled():
            if conn is not None:
                conn.close()
            # cancelled before its first step; _serve never got to release
            if task in self._not_started:
                self._not_started.discard(task)
                self._session.release()
            return

        exc = task.exception()
        if exc is not None:
            self.failed_total += 1
            logger.opt(exception=exc).error(f"{self._label} ssh proxy stream task failed")
        elif task.result() is False:
            self.failed_total += 1
