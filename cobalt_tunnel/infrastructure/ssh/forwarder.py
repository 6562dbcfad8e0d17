"""
Per-connection forwarding through an SSH session.

Each accepted local connection gets its own ``ConnectionForwarder`` which
opens one direct-tcpip channel and relays bytes in both directions until
either side closes or the tunnel is cancelled.
"""

import asyncio
from typing import Any, Dict, Tuple

import asyncssh
from loguru import logger

from ...core.domain.models import ForwardTarget
from ...core.exceptions import ChannelOpenFailed
from ...core.interfaces.tunnel import ISession
from ...core.services.cancellation import CancellationToken

DEFAULT_BUFFER_SIZE = 65536


class ConnectionForwarder:
    """
    Relays one local stream through one SSH channel.

    The forwarder owns the local stream for its whole lifetime and holds one
    reference on the session, which it drops when it finishes.
    """

    def __init__(
        self,
        session: ISession,
        target: ForwardTarget,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        cancel_token: CancellationToken,
        label: str = "",
        buffer_size: int = DEFAULT_BUFFER_SIZE
    ):
        self._session = session
        self._target = target
        self._reader = reader
        self._writer = writer
        self._cancel_token = cancel_token
        self._label = label
        self._buffer_size = buffer_size
        self._bytes: Dict[str, int] = {'up': 0, 'down': 0}

    @property
    def bytes_up(self) -> int:
        """Bytes relayed from the local client to the channel."""
        return self._bytes['up']

    @property
    def bytes_down(self) -> int:
        """Bytes relayed from the channel to the local client."""
        return self._bytes['down']

    @property
    def peer(self) -> Tuple[str, int]:
        peername = self._writer.get_extra_info('peername')
        if not peername:
            return ("127.0.0.1", 0)
        return (peername[0], peername[1])

    async def run(self) -> bool:
        """
        Forward the connection; every exit path releases both halves.

        Returns:
            False if the channel could not be opened, True otherwise
        """
        peer = self.peer

        try:
            try:
                chan_reader, chan_writer = await self._session.open_channel(self._target, peer)
            except ChannelOpenFailed as e:
                logger.error(f"Unable to forward messages via ssh: {e}")
                return False

            logger.debug(
                f"{self._label} proxy stream started: {peer[0]}:{peer[1]} -> {self._target}")

            try:
                await self._relay(chan_reader, chan_writer)
            finally:
                chan_writer.close()

            return True
        finally:
            self._writer.close()
            self._session.release()

            logger.debug(
                f"{self._label} proxy stream finished "
                f"(up={self.bytes_up} bytes, down={self.bytes_down} bytes)")

            await self._wait_local_closed()

    async def _relay(self, chan_reader: Any, chan_writer: Any) -> None:
        """Run both copy loops raced against cancellation."""
        upstream = asyncio.ensure_future(self._pipe(self._reader, chan_writer, 'up'))
        downstream = asyncio.ensure_future(self._pipe(chan_reader, self._writer, 'down'))
        aborted = asyncio.ensure_future(self._cancel_token.wait())
        tasks = {upstream, downstream, aborted}

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if aborted in done:
            logger.debug(f"{self._label} proxy stream received abort event")

    async def _pipe(self, reader: Any, writer: Any, direction: str) -> None:
        """Copy bytes until EOF or an I/O error."""
        try:
            while True:
                data = await reader.read(self._buffer_size)
                if not data:
                    break

                writer.write(data)
                await writer.drain()
                self._bytes[direction] += len(data)
        except (OSError, asyncssh.Error) as e:
            logger.debug(f"{self._label} proxy stream {direction} ended with error: {e}")

    async def _wait_local_closed(self) -> None:
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug(f"{self._label} local stream closed with error: {e}")
