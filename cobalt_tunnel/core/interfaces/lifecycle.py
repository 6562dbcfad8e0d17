"""
Lifecycle interfaces for components that own background work.

These interfaces provide a consistent way to dispose of resources and
report health across the tunnel components.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class IClosable(ABC):
    """Interface for components that own background tasks or sockets."""

    @abstractmethod
    def close(self) -> None:
        """
        Request shutdown of the component.

        Must be idempotent: calling it again after the first call is a no-op.
        """
        pass

    @abstractmethod
    async def wait_closed(self, timeout: Optional[float] = None) -> None:
        """
        Wait for shutdown requested by ``close`` to complete.

        Args:
            timeout: Upper bound in seconds; None uses the component default
        """
        pass


class IHealthCheckable(ABC):
    """Interface for components that can report their health status."""

    @abstractmethod
    def check_health(self) -> Dict[str, Any]:
        """
        Check the health status of the component.

        Returns:
            Dict containing health information with at least:
            - 'healthy': bool indicating if component is healthy
            - 'status': str describing current status
            - 'details': Dict with additional health details
        """
        pass
