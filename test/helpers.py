"""Fake legs and small async helpers shared by the test modules."""

import asyncio

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close
from websockets.protocol import State

from ws_token_proxy.core.upstream_connector import UpstreamConnector


class FakeLeg:
    """In-memory stand-in for a websockets connection."""

    def __init__(self, subprotocol=None):
        self.state = State.OPEN
        self.subprotocol = subprotocol
        self.sent = []
        self.close_calls = []
        self._incoming = asyncio.Queue()

    def feed(self, message):
        self._incoming.put_nowait(message)

    def feed_close(self, code=1000, reason=""):
        self.state = State.CLOSED
        self._incoming.put_nowait(ConnectionClosedOK(Close(code, reason), None))

    def feed_error(self):
        self.state = State.CLOSED
        self._incoming.put_nowait(ConnectionClosedError(None, None))

    async def recv(self):
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, message):
        if self.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

    async def close(self, code=1000, reason=""):
        self.close_calls.append((code, reason))
        if self.state is State.OPEN:
            self.state = State.CLOSED
            frame = Close(code, reason)
            self._incoming.put_nowait(ConnectionClosedOK(frame, frame, False))


class StubConnector(UpstreamConnector):
    """Connector whose handshake completes when the test says so."""

    def __init__(self, token="secret-token-value", address="ws://broker.test/"):
        super().__init__(address, token)
        self.handshake = asyncio.get_running_loop().create_future()
        self.opened = 0

    def open(self, session_id=""):
        self.opened += 1
        return self.handshake


async def wait_until(predicate, timeout=2.0):
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


def proxy_url(proxy, token="secret-token-value", server=None, path="/"):
    query = []
    if token is not None:
        query.append(f"token={token}")
    if server is not None:
        query.append(f"server={server}")
    return f"ws://127.0.0.1:{proxy.bound_port}{path}?{'&'.join(query)}"
