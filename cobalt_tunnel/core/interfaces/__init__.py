"""
Interfaces between tunnel components.
"""

from .lifecycle import IClosable, IHealthCheckable
from .tunnel import ISession, ISessionEstablisher, ITunnelHandle, ITunnelManager

__all__ = [
    "IClosable",
    "IHealthCheckable",
    "ISession",
    "ISessionEstablisher",
    "ITunnelHandle",
    "ITunnelManager",
]
