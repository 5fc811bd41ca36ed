"""
WebSocket Token Tunnel Proxy

Lets browsers reach a WebSocket broker that requires an X-Auth-Token header:
the browser passes token and server in the query string and the proxy opens
the upstream connection with the header injected, then relays frames
unchanged in both directions.

Architecture:
- core/: Server, session lifecycle and frame relay
- utils/: Logging and port helpers
"""

# Core components
from .core import TokenTunnelProxy

# Integration functions
from .integration import (
    start_tunnel_server,
    cleanup_tunnel_server,
    get_proxy_instance,
    get_server_error
)

# Configuration
from .production_config import ProxyConfig, DevelopmentConfig

# Utilities
from .utils import get_logger, setup_logging, mask_token

__version__ = "1.0.0"
__all__ = [
    # Core components
    'TokenTunnelProxy',

    # Integration functions
    'start_tunnel_server',
    'cleanup_tunnel_server',
    'get_proxy_instance',
    'get_server_error',

    # Configuration
    'ProxyConfig',
    'DevelopmentConfig',

    # Utilities
    'get_logger',
    'setup_logging',
    'mask_token',
]
