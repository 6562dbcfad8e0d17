"""
Domain models for SSH tunnels.

These dataclasses describe the remote SSH endpoint, the credentials used to
authenticate against it and the target reached through it.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple


def _check_port(name: str, port: int) -> None:
    if not (1 <= port <= 65535):
        raise ValueError(f"{name} must be between 1 and 65535, got {port}")


@dataclass(frozen=True)
class PrivateKey:
    """Private key material with an optional passphrase."""
    key: bytes = field(repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.key, str):
            object.__setattr__(self, 'key', self.key.encode('utf-8'))
        elif isinstance(self.key, (list, bytearray)):
            object.__setattr__(self, 'key', bytes(self.key))

        if not self.key:
            raise ValueError("Private key data must not be empty")


@dataclass(frozen=True)
class Identity:
    """
    SSH credentials: either a private key or a password.

    Exactly one of ``key`` and ``password`` must be set.
    """
    key: Optional[PrivateKey] = None
    password: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.key is not None and self.password is not None:
            raise ValueError("Identity takes either a key or a password, not both")

        if self.key is None and self.password is None:
            raise ValueError("Identity requires a key or a password")

    @classmethod
    def from_key(cls, key: bytes, passphrase: Optional[str] = None) -> 'Identity':
        """Build a key identity."""
        return cls(key=PrivateKey(key, passphrase))

    @classmethod
    def from_password(cls, password: str) -> 'Identity':
        """Build a password identity."""
        return cls(password=password)

    @property
    def method(self) -> str:
        """Authentication method this identity uses."""
        return "publickey" if self.key is not None else "password"


@dataclass(frozen=True)
class RemoteDescriptor:
    """SSH server to connect to and the user to log in as."""
    host: str
    user: str
    port: int = 22
    identity: Optional[Identity] = None

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Remote host is required")

        if not self.user:
            raise ValueError("Username is required for SSH tunnel")

        _check_port("SSH port", self.port)

    @property
    def label(self) -> str:
        """Short ``user@host:port`` form used in log lines."""
        return f"{self.user}@{self.host}:{self.port}"


@dataclass(frozen=True)
class ForwardTarget:
    """Host and port reached from the SSH server's network."""
    host: str
    port: int

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Forward target host is required")

        _check_port("Forward target port", self.port)

    def as_tuple(self) -> Tuple[str, int]:
        return (self.host, self.port)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"
