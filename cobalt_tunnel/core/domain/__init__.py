"""
Domain models for tunnel endpoints and credentials.
"""

from .models import ForwardTarget, Identity, PrivateKey, RemoteDescriptor

__all__ = [
    "ForwardTarget",
    "Identity",
    "PrivateKey",
    "RemoteDescriptor",
]
