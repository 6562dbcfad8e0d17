"""
Configuration models and data structures.

This module defines the configuration models used throughout the application,
providing type safety and validation for configuration values.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class SSHTunnelConfig:
    """SSH tunnel transport configuration."""
    connect_timeout: float = 10.0
    login_timeout: float = 10.0
    keepalive_interval: float = 5.0
    keepalive_count_max: int = 6
    known_hosts: Optional[str] = None
    buffer_size: int = 65536
    shutdown_grace_period: float = 5.0
    client_version: str = "CobaltTunnel_1.0"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        timeouts = [
            ("Connect timeout", self.connect_timeout),
            ("Login timeout", self.login_timeout),
            ("Keepalive interval", self.keepalive_interval),
            ("Shutdown grace period", self.shutdown_grace_period),
        ]

        for name, timeout in timeouts:
            if timeout <= 0:
                raise ValueError(f"{name} must be positive, got {timeout}")

        if self.keepalive_count_max < 1:
            raise ValueError(
                f"Keepalive count max must be at least 1, got {self.keepalive_count_max}")

        if self.buffer_size <= 0:
            raise ValueError(f"Buffer size must be positive, got {self.buffer_size}")

    def to_asyncssh_kwargs(self) -> Dict[str, Any]:
        """Convert to the asyncssh connection options this config controls."""
        return {
            'client_version': self.client_version,
            'login_timeout': self.login_timeout,
            'keepalive_interval': self.keepalive_interval,
            'keepalive_count_max': self.keepalive_count_max,
            'known_hosts': self.known_hosts,
        }


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    max_file_size: str = "10 MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False
    asyncssh_level: str = "WARNING"

    def __post_init__(self) -> None:
        # asyncssh logs through the standard library, which lacks TRACE/SUCCESS
        stdlib_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        levels = ("TRACE", "SUCCESS") + stdlib_levels

        self.level = self.level.upper()
        self.asyncssh_level = self.asyncssh_level.upper()

        if self.level not in levels:
            raise ValueError(f"Unknown log level: {self.level}")

        if self.asyncssh_level not in stdlib_levels:
            raise ValueError(f"Unknown asyncssh log level: {self.asyncssh_level}")


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    name: str = "Cobalt Tunnel"
    version: str = "0.1.0"

    tunnel: SSHTunnelConfig = field(default_factory=SSHTunnelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationConfig':
        """Create configuration from dictionary."""
        tunnel_config = SSHTunnelConfig(**data.get('tunnel', {}))
        logging_config = LoggingConfig(**data.get('logging', {}))

        return cls(
            name=data.get('name', 'Cobalt Tunnel'),
            version=data.get('version', '0.1.0'),
            tunnel=tunnel_config,
            logging=logging_config,
            config_file_path=data.get('config_file_path')
        )
