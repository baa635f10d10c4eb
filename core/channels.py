"""
Thread-to-loop channels.

paho-mqtt delivers messages on its network thread and PortAudio reports the
end of playback on its callback thread. Both hand items to the event loop
through an EventChannel, which the coordinator consumes with ``get()``.
"""
import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)


class EventChannel:
    """A closable asyncio queue that accepts items from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop, name: str = "channel") -> None:
        self.name = name
        self._loop = loop
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item: Any) -> None:
        """Queue *item* from any thread. Items sent after close are dropped."""
        try:
            self._loop.call_soon_threadsafe(self._put_nowait, item)
        except RuntimeError:
            # loop already closed, nobody is left to consume the item
            logger.debug("%s: loop closed, dropping item", self.name)

    def close(self) -> None:
        """Close the channel from any thread; pending items are still delivered."""
        try:
            self._loop.call_soon_threadsafe(self._shutdown)
        except RuntimeError:
            logger.debug("%s: loop closed before channel close", self.name)

    async def get(self) -> Any:
        """
        Wait for the next item.

        Raises:
            asyncio.QueueShutDown: the channel is closed and drained
        """
        return await self._queue.get()

    def _put_nowait(self, item: Any) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueShutDown:
            logger.debug("%s: closed, dropping item", self.name)

    def _shutdown(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.shutdown()
