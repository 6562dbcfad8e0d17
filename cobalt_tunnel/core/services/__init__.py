"""
Core services shared by the tasks of a tunnel.
"""

from .cancellation import CancellationBus, CancellationSender, CancellationToken

__all__ = [
    "CancellationBus",
    "CancellationSender",
    "CancellationToken",
]
