"""
miraiclient/gateway/frames.py — WebSocket Message Reassembly

A logical gateway message may arrive split across several WebSocket frames.
FrameAssembler buffers the fragments until the final one and only then hands
the complete bytes to the JSON decoder.
"""

from __future__ import annotations

from typing import Any, Union

Fragment = Union[str, bytes, bytearray, memoryview]


class FrameAssembler:
    """Growable buffer for one logical message. Reused across messages."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, fragment: Fragment) -> None:
        if isinstance(fragment, str):
            fragment = fragment.encode("utf-8")
        self._buffer.extend(fragment)

    def finish(self) -> bytes:
        """Return the complete message and reset the buffer."""
        message = bytes(self._buffer)
        self._buffer.clear()
        return message

    def reset(self) -> None:
        self._buffer.clear()

    async def receive(self, ws: Any) -> bytes:
        """
        Read one full message from a websockets connection.

        recv_streaming() yields the fragments of a single message and stops at
        the message boundary. A partial buffer is discarded if reading fails.
        """
        try:
            async for fragment in ws.recv_streaming():
                self.feed(fragment)
        except BaseException:
            self.reset()
            raise
        return self.finish()
