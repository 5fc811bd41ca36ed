"""
Process Integration for the Token Tunnel Proxy

Runs the proxy in its own thread and event loop so that it can be embedded in
another application or driven by the standalone starter.
"""

import asyncio
import platform
import threading
from typing import Optional

from .core.tunnel_proxy import TokenTunnelProxy
from .production_config import ProxyConfig
from .utils.logging import get_logger

# Set correct event loop policy for Windows
if platform.system() == 'Windows':
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Global state
_proxy_instance: Optional[TokenTunnelProxy] = None
_server_thread: Optional[threading.Thread] = None
_server_error: Optional[BaseException] = None

logger = get_logger(__name__)


def start_tunnel_server(config: Optional[ProxyConfig] = None) -> threading.Thread:
    """Start the proxy server in a separate thread"""
    global _proxy_instance, _server_thread, _server_error

    if _server_thread and _server_thread.is_alive():
        logger.info("Tunnel proxy server already running")
        return _server_thread

    _server_error = None
    _proxy_instance = TokenTunnelProxy(config or ProxyConfig.from_env())
    proxy = _proxy_instance

    def run_tunnel_server():
        """Run the proxy in a private event loop"""
        global _proxy_instance, _server_error

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(proxy.start())
        except KeyboardInterrupt:
            logger.info("Tunnel proxy server interrupted")
        except Exception as e:
            _server_error = e
            logger.exception(f"Error in tunnel proxy server thread: {e}")
        finally:
            try:
                loop.close()
            except Exception as e:
                logger.warning(f"Error closing event loop: {e}")
            if _proxy_instance is proxy:
                _proxy_instance = None

    logger.info("Starting tunnel proxy server thread")
    _server_thread = threading.Thread(
        target=run_tunnel_server,
        name="ws-token-proxy",
        daemon=False  # Allow proper cleanup
    )
    _server_thread.start()
    return _server_thread


def cleanup_tunnel_server(timeout: Optional[float] = None) -> bool:
    """
    Stop the proxy and wait for its thread to finish

    Returns:
        bool: False if the server thread is still running after the timeout
    """
    global _proxy_instance, _server_thread

    logger.info("Cleaning up tunnel proxy server...")

    proxy = _proxy_instance
    if proxy:
        proxy.request_shutdown()
        if timeout is None:
            timeout = proxy.config.shutdown_grace + 5

    if _server_thread and _server_thread.is_alive():
        logger.info("Waiting for tunnel proxy thread to finish...")
        _server_thread.join(timeout=timeout)

        if _server_thread.is_alive():
            # Keep the handles so a later cleanup can still stop it
            logger.warning("Tunnel proxy thread still running after shutdown timeout")
            return False

        logger.info("Tunnel proxy thread finished successfully")

    _server_thread = None
    _proxy_instance = None
    logger.info("Tunnel proxy server cleanup completed")
    return True


def get_proxy_instance() -> Optional[TokenTunnelProxy]:
    """Get the running proxy instance"""
    return _proxy_instance


def get_server_error() -> Optional[BaseException]:
    """Exception that stopped the last server thread, if it failed"""
    return _server_error
