import socket

from .logging import get_logger

logger = get_logger(__name__)


def is_port_in_use(host, port):
    """
    Check if a port is already bound by another process

    Args:
        host: Host to check
        port: Port to check (0 is never reported as in use)

    Returns:
        bool: True if port is in use
    """
    if not port:
        return False

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.settimeout(1.0)
            s.bind((host, port))
            return False
    except socket.error as e:
        logger.debug(f"Port {host}:{port} unavailable: {e}")
        return True
