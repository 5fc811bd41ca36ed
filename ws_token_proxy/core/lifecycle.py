"""
Session Lifecycle Coordinator

Ties the two legs of a session together. Whichever leg closes or fails first
decides how the other one is closed; every later close or error is only
logged. A session always ends TERMINATED with both legs released.

Each session runs in its own task, and the closing latch and pending buffer
are only touched between suspension points, so the event loop itself is the
per-session critical section.
"""

import asyncio
from typing import Tuple

from websockets.frames import CloseCode, EXTERNAL_CLOSE_CODES

from .frame_relay import CLIENT, UPSTREAM, CloseTrigger, FrameRelay
from .session import Session, SessionState
from .upstream_connector import UpstreamConnector
from ..exceptions import UpstreamConnectError
from ..utils.logging import get_logger

logger = get_logger(__name__)

ERROR_REASONS = {
    UPSTREAM: 'Upstream connection error',
    CLIENT: 'Client connection error',
}
CONNECT_FAILED_REASON = 'Failed to connect to upstream server'


def is_sendable_close_code(code: int) -> bool:
    """Whether a code may appear in a close frame we send"""
    return code in EXTERNAL_CLOSE_CODES or 3000 <= code < 5000


def resolve_close(trigger: CloseTrigger) -> Tuple[int, str]:
    """
    Map a close-trigger to the code and reason used on the opposite leg.

    Explicit closes are propagated verbatim; errors and codes that cannot be
    sent become 1011.
    """
    if trigger.is_error:
        return CloseCode.INTERNAL_ERROR, ERROR_REASONS[trigger.source]

    if trigger.code is None or trigger.code == CloseCode.NO_STATUS_RCVD:
        return CloseCode.NORMAL_CLOSURE, trigger.reason or ''

    if is_sendable_close_code(trigger.code):
        return trigger.code, trigger.reason or ''

    return CloseCode.INTERNAL_ERROR, ERROR_REASONS[trigger.source]


class SessionCoordinator:
    """Runs one session from accepted handshake to TERMINATED"""

    def __init__(self, session: Session, connector: UpstreamConnector):
        self.session = session
        self.connector = connector
        self.relay = FrameRelay(session)

    async def run(self):
        session = self.session
        logger.info(f"Client connected: session={session.session_id} server={session.upstream_address} "
                    f"token={self.connector.masked_token}")

        try:
            connecting = self.connector.open(session.session_id)
        except UpstreamConnectError as e:
            logger.error(f"Failed to create upstream connection: session={session.session_id} error={e}")
            session.begin_closing()
            await self._close_leg(session.client_leg, CLIENT, CloseCode.INTERNAL_ERROR, CONNECT_FAILED_REASON)
            self._terminate()
            return

        upstream_task = asyncio.create_task(self._run_upstream(connecting))
        try:
            trigger = await self.relay.pump(session.client_leg, CLIENT, self.relay.client_to_upstream)
            await self.handle_close_trigger(trigger)
        finally:
            if session.upstream_leg is None and not upstream_task.done():
                # Client went away while the upstream handshake was in flight
                upstream_task.cancel()
            await asyncio.wait([upstream_task])
            if not upstream_task.cancelled():
                error = upstream_task.exception()
                if error is not None:
                    logger.error(f"Upstream task failed: session={session.session_id} error={error!r}",
                                 exc_info=error)
            self._terminate()

    async def _run_upstream(self, connecting):
        session = self.session

        try:
            upstream = await connecting
        except asyncio.CancelledError:
            logger.debug(f"Upstream handshake abandoned: session={session.session_id}")
            raise
        except Exception as e:
            await self.handle_close_trigger(CloseTrigger(UPSTREAM, 'error', error=e))
            return

        session.upstream_leg = upstream
        if session.closing:
            # Client left while the handshake was in flight; pass its close on
            code, reason = (resolve_close(session.close_trigger) if session.close_trigger
                            else (CloseCode.NORMAL_CLOSURE, ''))
            await self._close_leg(upstream, UPSTREAM, code, reason)
            return

        logger.info(f"Upstream connection established: session={session.session_id} "
                    f"subprotocol={upstream.subprotocol}")

        await self.relay.drain_pending()
        if not session.closing:
            session.state = SessionState.RELAYING

        trigger = await self.relay.pump(upstream, UPSTREAM, self.relay.upstream_to_client)
        await self.handle_close_trigger(trigger)

    async def handle_close_trigger(self, trigger: CloseTrigger) -> bool:
        """
        Propagate the first close-trigger of the session to the opposite leg.

        Returns:
            bool: True if this trigger closed the other leg, False if the
            session was already closing
        """
        session = self.session
        duration = session.duration_ms()

        if trigger.is_error:
            logger.error(f"{trigger.source.capitalize()} error: session={session.session_id} "
                         f"error={trigger.error!r} duration={duration}ms")
        else:
            logger.info(f"{trigger.source.capitalize()} connection closed: session={session.session_id} "
                        f"code={trigger.code or 1000} reason={trigger.reason!r} "
                        f"duration={duration}ms")

        if not session.begin_closing():
            logger.debug(f"Session already closing, ignoring {trigger.source} {trigger.kind}: "
                         f"session={session.session_id}")
            return False

        session.close_trigger = trigger
        dropped = session.pending_frames.discard()
        if dropped:
            logger.debug(f"Discarded {dropped} buffered message(s): session={session.session_id}")

        code, reason = resolve_close(trigger)
        if trigger.source == CLIENT:
            target, target_name = session.upstream_leg, UPSTREAM
        else:
            target, target_name = session.client_leg, CLIENT

        if target is None:
            logger.debug(f"No {target_name} leg to close: session={session.session_id}")
            return True

        await self._close_leg(target, target_name, code, reason)
        return True

    async def _close_leg(self, leg, leg_name: str, code: int, reason: str):
        try:
            await leg.close(code, reason)
        except Exception as e:
            logger.warning(f"Error closing {leg_name} connection: session={self.session.session_id} error={e}")

    def _terminate(self):
        session = self.session
        session.state = SessionState.TERMINATED
        logger.debug(f"Session terminated: session={session.session_id} duration={session.duration_ms()}ms")


async def run_session(client_leg, token: str, upstream_address: str, subprotocols=None,
                      verify_tls: bool = True, connect_options=None) -> Session:
    """Build and run a session for an accepted client leg"""
    session = Session(client_leg, upstream_address)
    connector = UpstreamConnector(
        upstream_address,
        token,
        subprotocols=subprotocols,
        verify_tls=verify_tls,
        connect_options=connect_options,
    )
    await SessionCoordinator(session, connector).run()
    return session
