"""
Tunnel-wide cancellation signal.

A ``CancellationBus`` is a single-slot, latest-value broadcast: it moves
from active to cancelled exactly once and every subscriber observes that
transition independently. Nothing is consumed by waiting, so the number of
subscribers can change freely while the tunnel runs.
"""

import asyncio


class CancellationToken:
    """Read side of a cancellation bus."""

    def __init__(self, event: asyncio.Event):
        self._event = event

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has fired."""
        return self._event.is_set()

    async def wait(self) -> None:
        """Wait until cancellation fires; returns at once if it already has."""
        await self._event.wait()


class CancellationSender:
    """Write side of a cancellation bus. Only the first ``fire`` has effect."""

    def __init__(self, event: asyncio.Event):
        self._event = event

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def fire(self) -> bool:
        """
        Move the bus to the cancelled state.

        Returns:
            True if this call performed the transition, False if the bus
            was already cancelled
        """
        if self._event.is_set():
            return False

        self._event.set()
        return True


class CancellationBus:
    """Single-producer, multi-subscriber cancellation signal for one tunnel."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._sender = CancellationSender(self._event)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def sender(self) -> CancellationSender:
        """Get the bus sender; every call returns the same instance."""
        return self._sender

    def subscribe(self) -> CancellationToken:
        """Create a new independent subscriber."""
        return CancellationToken(self._event)
