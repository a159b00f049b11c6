"""
EventChannel - one-slot handoff between a turn and its HTTP response body.

The producer (TurnMultiplexer) awaits send() for every event; send()
returns only after the consumer has taken the event and asked for the
next one, so a slow client throttles the turn. Closing the channel is the
only cancellation signal: pending and later sends raise ChannelClosed.

Usage:
    channel = EventChannel()
    task = asyncio.create_task(multiplexer.run(channel, request))
    async for event in channel:
        yield encode_event(event)
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

from errors import ChannelClosed

logger = logging.getLogger(__name__)

_DONE = object()


class EventChannel:
    def __init__(self):
        self._slot: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=1)
        self._taken: Optional[asyncio.Event] = None
        self._closed = False
        self._completed = False
        self.sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: Dict[str, Any]) -> None:
        """Hand one event to the consumer and wait until it is taken."""
        if self._closed or self._completed:
            raise ChannelClosed("Event channel is closed")

        taken = asyncio.Event()
        self._taken = taken
        await self._slot.put((event, taken))
        await taken.wait()
        if self._closed:
            raise ChannelClosed("Event channel closed while sending")
        self.sent += 1

    def complete(self) -> None:
        """End iteration once the consumer has drained the slot."""
        if self._completed or self._closed:
            return
        self._completed = True
        try:
            self._slot.put_nowait((_DONE, None))
        except asyncio.QueueFull:
            # A send is still pending; the consumer sees _DONE after it
            asyncio.get_running_loop().create_task(self._slot.put((_DONE, None)))

    def close(self) -> None:
        """Consumer is gone. Wakes a pending send with ChannelClosed."""
        if self._closed:
            return
        self._closed = True
        if self._taken is not None:
            self._taken.set()
        logger.debug("Event channel closed by consumer")

    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Dict[str, Any]]:
        while not self._closed:
            item, taken = await self._slot.get()
            if item is _DONE:
                return
            yield item
            # Acknowledged once the next event is requested
            taken.set()
