import asyncio
import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis


logger = logging.getLogger(__name__)

OnMessage = Callable[[str], Awaitable[None]]


class NoopBus:

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, channel: str, on_message: OnMessage):
        # Same shape as RedisBus subscriptions: run() until cancel()
        class _Sub:
            def __init__(self_inner) -> None:
                self_inner._stopped = asyncio.Event()

            async def run(self_inner):
                await self_inner._stopped.wait()

            async def cancel(self_inner):
                self_inner._stopped.set()

        return _Sub()

    async def close(self) -> None:
        return


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: OnMessage):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        class _Sub:
            _running = True

            async def run(self_inner):
                while self_inner._running:
                    try:
                        msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    except redis.ConnectionError:
                        logger.warning("Lost connection while listening on %s, retrying", channel)
                        await asyncio.sleep(0.5)
                        continue
                    if msg and msg.get("type") == "message":
                        data = msg.get("data")
                        if isinstance(data, bytes):
                            data = data.decode("utf-8")
                        await on_message(data)

            async def cancel(self_inner):
                self_inner._running = False
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()

        return _Sub()

    async def close(self) -> None:
        await self._redis.aclose()


def create_bus(url: Optional[str]):
    if not url:
        return NoopBus()
    return RedisBus(url)
