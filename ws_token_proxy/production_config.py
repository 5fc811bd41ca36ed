"""
Configuration for the Token Tunnel Proxy

Settings are read from the environment once at startup and the resulting
object is handed to the server; nothing in the core reads the environment.
"""

import os
from typing import Dict, Any, List, Mapping, Optional

from .exceptions import ConfigurationError
from .utils.logging import LOG_LEVELS


def _parse_origins(raw: Optional[str]) -> List[str]:
    """Split a comma-separated allow-list, dropping empty entries"""
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(',') if origin.strip()]


def _parse_int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


class ProxyConfig:
    """Runtime configuration for one proxy server"""

    def __init__(self,
                 host: str = '0.0.0.0',
                 port: int = 8080,
                 allowed_origins: Optional[List[str]] = None,
                 log_level: str = 'info',
                 reject_unauthorized: bool = True,
                 heartbeat_interval: int = 30,
                 heartbeat_timeout: int = 10,
                 max_message_size: int = 1048576,
                 shutdown_grace: int = 10):
        # Server Settings
        self.host = host
        self.port = port

        # Security
        self.allowed_origins = list(allowed_origins or [])
        self.reject_unauthorized = reject_unauthorized

        # Logging
        self.log_level = log_level.lower()

        # Connection Management
        self.heartbeat_interval = heartbeat_interval
        self.heartbeat_timeout = heartbeat_timeout
        self.max_message_size = max_message_size
        self.shutdown_grace = shutdown_grace

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ProxyConfig':
        """Build configuration from environment variables"""
        if environ is None:
            environ = os.environ

        return cls(
            host=environ.get('HOST', '0.0.0.0'),
            port=_parse_int(environ, 'PORT', 8080),
            allowed_origins=_parse_origins(environ.get('ALLOWED_ORIGINS')),
            log_level=environ.get('LOG_LEVEL', 'info'),
            reject_unauthorized=environ.get('REJECT_UNAUTHORIZED', 'true').lower() != 'false',
            heartbeat_interval=_parse_int(environ, 'HEARTBEAT_INTERVAL_SECONDS', 30),
            heartbeat_timeout=_parse_int(environ, 'HEARTBEAT_TIMEOUT_SECONDS', 10),
            max_message_size=_parse_int(environ, 'MAX_MESSAGE_SIZE_BYTES', 1048576),
            shutdown_grace=_parse_int(environ, 'SHUTDOWN_GRACE_SECONDS', 10),
        )

    @property
    def origin_restricted(self) -> bool:
        return bool(self.allowed_origins)

    @property
    def debug(self) -> bool:
        return self.log_level == 'debug'

    def get_server_config(self) -> Dict[str, Any]:
        """Keyword settings shared by the listening server and upstream legs"""
        return {
            'ping_interval': self.heartbeat_interval or None,
            'ping_timeout': self.heartbeat_timeout or None,
            'max_size': self.max_message_size or None,
            'open_timeout': None,
            'compression': None,
        }

    def validate(self) -> bool:
        """Validate configuration settings, raising ConfigurationError"""
        if not (0 <= self.port <= 65535):
            raise ConfigurationError(f"Port {self.port} must be between 0-65535")

        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.log_level}")

        for name in ('heartbeat_interval', 'heartbeat_timeout', 'max_message_size', 'shutdown_grace'):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")

        return True

    def describe(self) -> Dict[str, Any]:
        """Loggable summary"""
        return {
            'host': self.host,
            'port': self.port,
            'allowed_origins': ','.join(self.allowed_origins) or 'all',
            'log_level': self.log_level,
            'reject_unauthorized': self.reject_unauthorized,
        }


class DevelopmentConfig(ProxyConfig):
    """Development configuration with relaxed settings"""

    def __init__(self, **overrides):
        settings = {
            'host': '127.0.0.1',
            'log_level': 'debug',
            'reject_unauthorized': False,
        }
        settings.update(overrides)
        super().__init__(**settings)
