"""Root pytest configuration and shared fixtures."""

import logging

import pytest
import pytest_asyncio
from websockets.asyncio.server import serve

from ws_token_proxy.core.tunnel_proxy import TokenTunnelProxy
from ws_token_proxy.production_config import ProxyConfig
from ws_token_proxy.utils.logging import ROOT_LOGGER_NAME


class RecordingUpstream:
    """Loopback broker that records handshakes and frames and echoes them back."""

    def __init__(self, echo=True):
        self.echo = echo
        self.request_headers = []
        self.received = []
        self.connections = []
        self.server = None

    async def handler(self, connection):
        self.request_headers.append(connection.request.headers)
        self.connections.append(connection)
        async for message in connection:
            self.received.append(message)
            if self.echo:
                await connection.send(message)

    @property
    def url(self):
        port = self.server.sockets[0].getsockname()[1]
        return f"ws://127.0.0.1:{port}/"


def _first_offered(connection, offered):
    return offered[0] if offered else None


@pytest_asyncio.fixture
async def upstream():
    broker = RecordingUpstream()
    broker.server = await serve(broker.handler, "127.0.0.1", 0, select_subprotocol=_first_offered)
    yield broker
    broker.server.close()
    await broker.server.wait_closed()


@pytest.fixture
def proxy_config():
    return ProxyConfig(host="127.0.0.1", port=0, shutdown_grace=1)


@pytest_asyncio.fixture
async def proxy(proxy_config):
    server = TokenTunnelProxy(proxy_config)
    await server.serve()
    yield server
    await server.shutdown()


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo setup_logging() so caplog keeps seeing package records."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
