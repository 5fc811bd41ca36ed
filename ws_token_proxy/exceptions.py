"""
Exceptions raised by the tunnel proxy
"""


class TunnelProxyError(Exception):
    """Base class for all tunnel proxy errors"""


class ConfigurationError(TunnelProxyError):
    """Invalid configuration value"""


class UpstreamConnectError(TunnelProxyError):
    """The outbound handshake could not be initiated"""

    def __init__(self, address: str, message: str):
        super().__init__(f"{message} ({address})")
        self.address = address
        self.message = message


class BufferClosedError(TunnelProxyError):
    """Frame appended to a pending buffer that was already drained"""
