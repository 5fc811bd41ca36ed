"""
Pending Frame Buffer

Holds client frames that arrive while the upstream leg is still connecting.
The buffer is drained exactly once, in arrival order, when upstream opens;
after that every frame goes straight to the relay.
"""

from collections import deque
from typing import Awaitable, Callable, Deque, NamedTuple, Union

from ..exceptions import BufferClosedError

Payload = Union[str, bytes]


class Frame(NamedTuple):
    payload: Payload
    is_binary: bool

    @classmethod
    def from_message(cls, message: Payload) -> 'Frame':
        # websockets delivers text frames as str and binary frames as bytes
        return cls(message, isinstance(message, (bytes, bytearray, memoryview)))

    @property
    def size(self) -> int:
        if self.is_binary:
            return len(self.payload)
        return len(self.payload.encode('utf-8'))


class PendingFrameBuffer:
    """
    Ordered, append-only-until-drained frame queue.

    Unbounded: nothing limits how much a client may send before upstream is
    ready.
    """

    def __init__(self):
        self._frames: Deque[Frame] = deque()
        self._drained = False

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def drained(self) -> bool:
        return self._drained

    def append(self, frame: Frame) -> int:
        """Queue a frame, returning the number of frames now pending"""
        if self._drained:
            raise BufferClosedError("pending buffer already drained")
        self._frames.append(frame)
        return len(self._frames)

    async def drain(self, sink: Callable[[Frame], Awaitable[None]]) -> int:
        """
        Send every pending frame to sink in arrival order, then close the buffer.

        Frames appended while a send is in flight are picked up by the same
        drain, so nothing can overtake them. The buffer is marked drained with
        no suspension point between the final emptiness check and the flag.

        Returns:
            int: Number of frames handed to the sink
        """
        if self._drained:
            raise BufferClosedError("pending buffer already drained")

        sent = 0
        while self._frames:
            frame = self._frames.popleft()
            await sink(frame)
            sent += 1

        self._drained = True
        return sent

    def discard(self) -> int:
        """Drop pending frames without sending them (session is closing)"""
        dropped = len(self._frames)
        self._frames.clear()
        self._drained = True
        return dropped
