"""
Upstream Connector

Opens the outbound WebSocket leg to the broker, injecting the X-Auth-Token
header that browsers cannot set themselves.
"""

import ssl
from typing import Any, Dict, List, Optional

from websockets.asyncio.client import connect
from websockets.exceptions import InvalidURI
from websockets.uri import parse_uri

from ..exceptions import UpstreamConnectError
from ..utils.logging import get_logger, mask_token

logger = get_logger(__name__)

AUTH_HEADER = 'X-Auth-Token'


def create_ssl_context(verify: bool) -> ssl.SSLContext:
    """TLS context for wss:// upstreams; verify=False accepts any certificate"""
    context = ssl.create_default_context()
    if not verify:
        # Development only: any upstream certificate is accepted
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class UpstreamConnector:
    """
    Builds the outbound handshake for one session.

    open() fails synchronously (UpstreamConnectError) when the handshake cannot
    even be initiated; everything that goes wrong later surfaces when the
    returned connection is awaited.
    """

    def __init__(self,
                 address: str,
                 token: str,
                 subprotocols: Optional[List[str]] = None,
                 verify_tls: bool = True,
                 connect_options: Optional[Dict[str, Any]] = None):
        self.address = address
        self.subprotocols = list(subprotocols or [])
        self.verify_tls = verify_tls
        self.connect_options = dict(connect_options or {})
        self._token = token

    @property
    def secure(self) -> bool:
        return self.address.startswith('wss://')

    @property
    def masked_token(self) -> str:
        return mask_token(self._token)

    def build_headers(self) -> Dict[str, str]:
        return {AUTH_HEADER: self._token}

    def describe_headers(self) -> Dict[str, str]:
        """Headers as they may appear in logs"""
        return {AUTH_HEADER: self.masked_token}

    def open(self, session_id: str = ''):
        """
        Initiate the outbound handshake.

        Returns:
            An awaitable websockets connect() object that resolves to the
            open upstream connection.

        Raises:
            UpstreamConnectError: If the handshake cannot be started
        """
        options = dict(self.connect_options)
        options['additional_headers'] = self.build_headers()
        # Upstream is dialled directly, never through HTTP(S)_PROXY from the environment
        options.setdefault('proxy', None)
        if self.subprotocols:
            options['subprotocols'] = self.subprotocols
        if self.secure:
            options['ssl'] = create_ssl_context(self.verify_tls)

        logger.debug(f"Connecting to upstream: session={session_id} server={self.address} "
                     f"headers={self.describe_headers()} subprotocols={self.subprotocols}")

        try:
            parse_uri(self.address)
            return connect(self.address, **options)
        except InvalidURI as e:
            raise UpstreamConnectError(self.address, f"Invalid upstream URI: {e.msg}") from e
        except (ValueError, TypeError) as e:
            raise UpstreamConnectError(self.address, str(e)) from e
