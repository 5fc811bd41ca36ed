"""
Token Tunnel Proxy Server

Accepts browser WebSocket connections carrying token and server in the query
string, opens the upstream leg with an injected X-Auth-Token header and relays
frames between the two. Plain HTTP requests are answered by the health
responder.
"""

import asyncio
import json
import time
from http import HTTPStatus
from typing import Optional, Sequence
from urllib.parse import urlsplit

from websockets.asyncio.server import serve
from websockets.datastructures import Headers
from websockets.frames import CloseCode
from websockets.http11 import Response

from .lifecycle import run_session
from .validator import Accepted, Rejected, summarize_request, validate_upgrade_request
from ..production_config import ProxyConfig
from ..utils.logging import get_logger
from ..utils.port_check import is_port_in_use

logger = get_logger(__name__)

HEALTH_PATH = '/health'


def is_upgrade_request(headers) -> bool:
    upgrade = headers.get_all('Upgrade') if hasattr(headers, 'get_all') else [headers.get('Upgrade', '')]
    return any(value.lower() == 'websocket' for value in upgrade if value)


def make_response(status: HTTPStatus, body: bytes, content_type: str) -> Response:
    headers = Headers()
    headers['Content-Type'] = content_type
    headers['Content-Length'] = str(len(body))
    headers['Cache-Control'] = 'no-store'
    headers['Connection'] = 'close'
    return Response(status.value, status.phrase, headers, body)


def health_response(path: str) -> Response:
    """200 with a JSON liveness body for /health, 404 for everything else"""
    if urlsplit(path).path == HEALTH_PATH:
        body = json.dumps({
            'status': 'ok',
            'timestamp': int(time.time() * 1000)
        }).encode('utf-8')
        return make_response(HTTPStatus.OK, body, 'application/json')

    return make_response(HTTPStatus.NOT_FOUND, b'Not Found', 'text/plain; charset=utf-8')


def select_first_subprotocol(connection, subprotocols: Sequence[str]) -> Optional[str]:
    """Accept the client's first offered subprotocol so browsers complete the handshake"""
    return subprotocols[0] if subprotocols else None


class TokenTunnelProxy:
    """
    WebSocket tunnelling proxy.

    One instance owns one listening server. Sessions share nothing with each
    other; the proxy only keeps the server handle.
    """

    def __init__(self, config: Optional[ProxyConfig] = None):
        self.config = config or ProxyConfig()

        # Server state
        self.running = False
        self.server = None
        self._main_loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._shutdown_requested = False

        logger.info(f"Initialized TokenTunnelProxy: {self.config.describe()}")

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound (differs from config when port 0 is used)"""
        if not self.server or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    async def serve(self):
        """Bind the listening socket and return once the server accepts connections"""
        host, port = self.config.host, self.config.port

        if is_port_in_use(host, port):
            logger.error(f"Port {port} on {host} is already in use")
            raise OSError(f"Port {port} on {host} is already in use")

        self._shutdown_event = asyncio.Event()
        self._main_loop = asyncio.get_running_loop()

        self.server = await serve(
            self._handle_connection,
            host,
            port,
            process_request=self.process_request,
            select_subprotocol=select_first_subprotocol,
            **self.config.get_server_config()
        )
        self.running = True

        port = self.bound_port
        logger.info(f"WebSocket proxy server started: port={port} "
                    f"allowed_origins={','.join(self.config.allowed_origins) or 'all'} "
                    f"log_level={self.config.log_level}")
        logger.info(f"Health check available at http://localhost:{port}{HEALTH_PATH}")
        logger.info(f"Example usage: ws://localhost:{port}?token=YOUR_TOKEN&server=wss://broker.example.com/")

    async def start(self):
        """Serve until request_shutdown() is called, then shut down"""
        await self.serve()

        if self._shutdown_requested:
            # request_shutdown() ran before the loop was known
            self._shutdown_event.set()

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("Received shutdown signal")
        finally:
            await self.shutdown()

    def request_shutdown(self):
        """Ask start() to stop; safe to call from any thread, even before serving"""
        self._shutdown_requested = True
        loop = self._main_loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._shutdown_event.set)
        except RuntimeError as e:
            logger.debug(f"Could not signal shutdown: {e}")

    async def shutdown(self):
        """Stop accepting sessions and let in-flight sessions drain"""
        if not self.server:
            return

        logger.info("Shutting down WebSocket proxy server...")
        self.running = False

        self.server.close(close_connections=False)
        grace = self.config.shutdown_grace
        try:
            await asyncio.wait_for(self.server.wait_closed(), timeout=grace)
        except asyncio.TimeoutError:
            remaining = list(self.server.connections)
            logger.warning(f"{len(remaining)} session(s) still open after {grace}s, closing them")
            await asyncio.gather(
                *(connection.close(CloseCode.GOING_AWAY, 'Server shutting down') for connection in remaining),
                return_exceptions=True
            )
            await self.server.wait_closed()

        self.server = None
        logger.info("Server closed")

    def process_request(self, connection, request) -> Optional[Response]:
        """
        Intercept every HTTP request before the WebSocket handshake.

        Returns:
            None to continue the handshake, or the HTTP response to send instead
        """
        if not is_upgrade_request(request.headers):
            return health_response(request.path)

        summary = summarize_request(request.path, request.headers)
        logger.info(f"Incoming connection request: origin={summary.origin} path={summary.path} "
                    f"token={summary.token} has_token={summary.has_token} has_server={summary.has_server}")

        result = validate_upgrade_request(request.path, request.headers, self.config.allowed_origins)
        if isinstance(result, Rejected):
            logger.warning(f"Rejected: {result.reason} (status={result.status.value} origin={summary.origin})")
            return connection.respond(result.status, result.reason)

        return None

    async def _handle_connection(self, connection):
        """Handle an accepted client leg"""
        result = validate_upgrade_request(
            connection.request.path,
            connection.request.headers,
            self.config.allowed_origins
        )
        if not isinstance(result, Accepted):
            await connection.close(CloseCode.POLICY_VIOLATION, result.reason)
            return

        await run_session(
            connection,
            result.token,
            result.upstream_address,
            subprotocols=result.client_subprotocols,
            verify_tls=self.config.reject_unauthorized,
            connect_options=self.config.get_server_config(),
        )
