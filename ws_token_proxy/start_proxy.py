"""
Standalone starter for the Token Tunnel Proxy
"""

import signal
import sys

from .exceptions import ConfigurationError
from .integration import start_tunnel_server, cleanup_tunnel_server, get_server_error
from .production_config import ProxyConfig
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signal.Signals(signum).name}, closing server...")
    cleanup_tunnel_server()


def main(environ=None) -> int:
    """Start the proxy server in standalone mode"""
    try:
        config = ProxyConfig.from_env(environ)
        config.validate()
    except ConfigurationError as e:
        setup_logging('info')
        logger.error(f"Configuration validation failed: {e}")
        return 1

    setup_logging(config.log_level)

    signal.signal(signal.SIGINT, signal_handler)
    if hasattr(signal, 'SIGTERM'):
        signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Starting standalone WebSocket proxy server...")
    server_thread = start_tunnel_server(config)

    # Keep the main thread alive so it can receive signals
    while server_thread.is_alive():
        server_thread.join(timeout=1.0)

    error = get_server_error()
    if error is not None:
        logger.error(f"WebSocket proxy server stopped with an error: {error}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
