"""
Application layer: tunnel orchestration.
"""

from .tunnel_manager import TunnelHandle, TunnelManager, open_tunnel

__all__ = [
    "TunnelHandle",
    "TunnelManager",
    "open_tunnel",
]
