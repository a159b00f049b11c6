"""
Tests for the event channel and NDJSON encoding.
"""

import asyncio
import json

import pytest

from errors import ChannelClosed
from routers.chat_orchestration.channel import EventChannel
from routers.chat_orchestration.wire import encode_event


class TestEventChannel:
    def test_delivers_in_order_then_ends(self):
        async def scenario():
            channel = EventChannel()

            async def produce():
                for i in range(3):
                    await channel.send({"type": "text-delta", "delta": str(i)})
                channel.complete()

            task = asyncio.create_task(produce())
            received = [event["delta"] async for event in channel]
            await task
            return received, channel.sent

        received, sent = asyncio.run(scenario())
        assert received == ["0", "1", "2"]
        assert sent == 3

    def test_send_waits_for_consumer(self):
        async def scenario():
            channel = EventChannel()
            send = asyncio.create_task(channel.send({"type": "start"}))
            await asyncio.sleep(0.05)
            pending_before_read = not send.done()

            iterator = channel.__aiter__()
            await iterator.__anext__()
            await asyncio.sleep(0.05)
            pending_after_read = not send.done()

            # Asking for the next event acknowledges the previous one
            next_event = asyncio.create_task(iterator.__anext__())
            await asyncio.wait_for(send, 1)
            channel.complete()
            with pytest.raises(StopAsyncIteration):
                await next_event
            return pending_before_read, pending_after_read

        before, after = asyncio.run(scenario())
        assert before is True
        assert after is True

    def test_close_fails_pending_and_future_sends(self):
        async def scenario():
            channel = EventChannel()
            pending = asyncio.create_task(channel.send({"type": "start"}))
            await asyncio.sleep(0.01)
            channel.close()
            with pytest.raises(ChannelClosed):
                await pending
            with pytest.raises(ChannelClosed):
                await channel.send({"type": "finish"})
            return channel.closed

        assert asyncio.run(scenario()) is True

    def test_complete_is_idempotent(self):
        async def scenario():
            channel = EventChannel()
            channel.complete()
            channel.complete()
            return [event async for event in channel]

        assert asyncio.run(scenario()) == []


class TestEncodeEvent:
    def test_compact_json_line(self):
        line = encode_event({"type": "text-delta", "id": "text-0", "delta": "héllo"})
        assert line == '{"type":"text-delta","id":"text-0","delta":"héllo"}\n'
        assert json.loads(line) == {"type": "text-delta", "id": "text-0", "delta": "héllo"}

    def test_one_line_per_event(self):
        line = encode_event({"type": "text-delta", "delta": "a\nb"})
        assert line.count("\n") == 1
