"""In-memory pub/sub for local development and testing.

An InMemoryBroker plays the role of the Redis server; every InMemoryPubSub is a
client connected to it. Disconnecting one client drops only that client's
subscriptions, so another client can keep publishing on the same broker.

Channel matching:
    - exact channels compare by equality and deliver `handler(payload)`
    - glob patterns (`*`, `?`, `[...]`) use fnmatch.fnmatchcase and deliver
      `handler(payload, channel)`

Delivery runs inline in publish(). Coroutine results of handlers are scheduled
as tasks and never awaited by the bus.

Usage:
    broker = InMemoryBroker()
    bus = InMemoryPubSub(broker)
    await bus.subscribe("orders.created", handler)
    await bus.publish("orders.created", {"id": 42})
    await bus.disconnect()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from fnmatch import fnmatchcase
from typing import Any, Callable, Optional

from redis_event_emitter.errors.errors import BusClosedError
from redis_event_emitter.metadata.metadata import is_pattern

logger = logging.getLogger(__name__)


class InMemoryBroker:
    """Routes published payloads to every connected client."""

    def __init__(self) -> None:
        self._clients: list[InMemoryPubSub] = []
        self._published = 0

    @property
    def clients(self) -> int:
        return len(self._clients)

    @property
    def published(self) -> int:
        """Total number of publish() calls since creation."""
        return self._published

    def attach(self, client: InMemoryPubSub) -> None:
        if client not in self._clients:
            self._clients.append(client)

    def detach(self, client: InMemoryPubSub) -> None:
        if client in self._clients:
            self._clients.remove(client)

    def publish(self, channel: str, payload: Any) -> int:
        """Deliver to all clients; returns the number of handlers invoked."""
        self._published += 1
        delivered = 0
        for client in list(self._clients):
            delivered += client._deliver(channel, payload)
        return delivered


class InMemoryPubSub:
    """
    Bus client backed by an InMemoryBroker.

    Attributes:
        broker: The shared broker (a private one is created if omitted)
        scope: Optional namespace; channels are prefixed with "<scope>:"
    """

    def __init__(self, broker: Optional[InMemoryBroker] = None, scope: Optional[str] = None):
        self._broker = broker if broker is not None else InMemoryBroker()
        self._prefix = f"{scope}:" if scope else ""
        # prefixed channel -> handlers
        self._channels: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._patterns: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._pending: set[asyncio.Future[Any]] = set()
        self._closed = False
        self._broker.attach(self)

    @property
    def broker(self) -> InMemoryBroker:
        return self._broker

    @property
    def is_closed(self) -> bool:
        return self._closed

    def subscription_count(self) -> int:
        return sum(len(h) for h in self._channels.values()) + sum(
            len(h) for h in self._patterns.values()
        )

    async def subscribe(self, channel: str, handler: Callable[..., Any]) -> None:
        if self._closed:
            raise BusClosedError(f"Cannot subscribe to {channel!r}: bus is disconnected")
        key = self._prefix + channel
        if is_pattern(channel):
            self._patterns[key].append(handler)
        else:
            self._channels[key].append(handler)
        logger.debug(f"InMemoryPubSub subscribed to {key!r}")

    # alias matching the Redis client surface
    on = subscribe

    async def publish(self, channel: str, payload: Any) -> int:
        """Publish `payload`; returns the number of handlers it reached across the broker."""
        if self._closed:
            raise BusClosedError(f"Cannot publish to {channel!r}: bus is disconnected")
        delivered = self._broker.publish(self._prefix + channel, payload)
        # let scheduled handler tasks start
        await asyncio.sleep(0)
        return delivered

    emit = publish

    async def disconnect(self) -> None:
        """Drop every subscription of this client. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        self._channels.clear()
        self._patterns.clear()
        self._broker.detach(self)
        logger.debug("InMemoryPubSub disconnected")

    quit = disconnect

    def _deliver(self, channel: str, payload: Any) -> int:
        if self._closed:
            return 0
        delivered = 0
        for handler in list(self._channels.get(channel, ())):
            self._invoke(handler, channel, payload)
            delivered += 1

        stripped = channel[len(self._prefix):] if channel.startswith(self._prefix) else channel
        for pattern, handlers in list(self._patterns.items()):
            if not fnmatchcase(channel, pattern):
                continue
            for handler in list(handlers):
                self._invoke(handler, channel, payload, stripped)
                delivered += 1
        return delivered

    def _invoke(self, handler: Callable[..., Any], channel: str, *args: Any) -> None:
        try:
            result = handler(*args)
        except Exception as e:
            logger.error(f"Handler error on {channel!r}: {e}", exc_info=True)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Async handler error: {task.exception()}")
