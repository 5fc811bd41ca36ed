"""
Frame Relay

Forwards frames verbatim between the two legs of a session. Client frames
that arrive before upstream is ready are diverted to the pending buffer.
Payloads are never inspected; only their size and type are logged.
"""

from typing import Awaitable, Callable, NamedTuple, Optional

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from .pending_buffer import Frame, Payload
from .session import Session
from ..utils.logging import get_logger

logger = get_logger(__name__)

CLIENT = 'client'
UPSTREAM = 'upstream'


class CloseTrigger(NamedTuple):
    """A close or error observed on one leg"""
    source: str                       # CLIENT or UPSTREAM
    kind: str                         # 'close' or 'error'
    code: Optional[int] = None
    reason: str = ''
    error: Optional[BaseException] = None

    @property
    def is_error(self) -> bool:
        return self.kind == 'error'


def trigger_from_closed(source: str, exc: ConnectionClosed) -> CloseTrigger:
    """A received close frame is an explicit close; its absence is an error"""
    if exc.rcvd is None:
        return CloseTrigger(source, 'error', error=exc)
    return CloseTrigger(source, 'close', exc.rcvd.code, exc.rcvd.reason)


class FrameRelay:
    """Bidirectional forwarding for one session"""

    def __init__(self, session: Session):
        self.session = session

    async def client_to_upstream(self, message: Payload):
        session = self.session
        frame = Frame.from_message(message)

        if session.closing:
            return

        if not session.upstream_ready:
            pending = session.pending_frames.append(frame)
            logger.debug(f"Buffering message (upstream not ready): session={session.session_id} "
                         f"bytes={frame.size} binary={frame.is_binary} pending={pending}")
            return

        if await self._send(session.upstream_leg, frame, UPSTREAM):
            logger.debug(f"Forwarded message client->upstream: session={session.session_id} "
                         f"bytes={frame.size} binary={frame.is_binary}")

    async def upstream_to_client(self, message: Payload):
        session = self.session
        frame = Frame.from_message(message)

        # Frames racing a closing client are lost
        if session.closing or session.client_leg.state is not State.OPEN:
            return

        if await self._send(session.client_leg, frame, CLIENT):
            logger.debug(f"Forwarded message upstream->client: session={session.session_id} "
                         f"bytes={frame.size} binary={frame.is_binary}")

    async def drain_pending(self) -> int:
        """Flush frames buffered before upstream opened; called once per session"""
        pending = len(self.session.pending_frames)
        if pending:
            logger.debug(f"Sending {pending} buffered message(s): session={self.session.session_id}")
        return await self.session.pending_frames.drain(self._send_buffered)

    async def _send_buffered(self, frame: Frame):
        if not self.session.closing:
            await self._send(self.session.upstream_leg, frame, UPSTREAM)

    async def _send(self, leg, frame: Frame, leg_name: str) -> bool:
        try:
            await leg.send(frame.payload)
            return True
        except ConnectionClosed:
            # The leg's own pump reports the close
            logger.debug(f"Dropped message for closed {leg_name} leg: session={self.session.session_id}")
            return False

    async def pump(self, leg, leg_name: str, forward: Callable[[Payload], Awaitable[None]]) -> CloseTrigger:
        """
        Read frames from one leg until it closes, forwarding each one.

        Returns:
            CloseTrigger: How the leg ended
        """
        try:
            while True:
                message = await leg.recv()
                await forward(message)
        except ConnectionClosed as e:
            return trigger_from_closed(leg_name, e)
        except Exception as e:
            logger.exception(f"Unexpected error relaying {leg_name} frames: session={self.session.session_id}")
            return CloseTrigger(leg_name, 'error', error=e)
