"""
Tunnel Session

State for one client-to-upstream tunnel. Every field is scoped to a single
session; nothing here is shared between sessions.
"""

import enum
import time
import uuid
from typing import Optional

from .pending_buffer import PendingFrameBuffer


class SessionState(enum.Enum):
    CONNECTING = 'connecting'   # upstream not yet open
    RELAYING = 'relaying'       # both legs open
    CLOSING = 'closing'         # one side initiated teardown
    TERMINATED = 'terminated'


def new_session_id() -> str:
    """Opaque identifier used only to correlate log lines"""
    return f"client-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class Session:
    """One tunnel: the accepted client leg plus at most one upstream leg"""

    def __init__(self, client_leg, upstream_address: str, session_id: Optional[str] = None):
        self.session_id = session_id or new_session_id()
        self.client_leg = client_leg
        self.upstream_leg = None
        self.upstream_address = upstream_address
        self.pending_frames = PendingFrameBuffer()
        self.state = SessionState.CONNECTING
        self.closing = False
        self.close_trigger = None
        self.started_at = time.monotonic()

    @property
    def upstream_ready(self) -> bool:
        return self.upstream_leg is not None and self.pending_frames.drained

    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def begin_closing(self) -> bool:
        """
        Atomic check-and-set of the closing latch.

        Returns:
            bool: True for the first caller only
        """
        if self.closing:
            return False
        self.closing = True
        self.state = SessionState.CLOSING
        return True

    def __repr__(self):
        return f"<Session {self.session_id} {self.state.value} -> {self.upstream_address}>"
