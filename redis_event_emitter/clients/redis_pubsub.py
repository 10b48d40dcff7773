"""
Redis pub/sub bus client over redis.asyncio.

Channel matching:
    - exact channels use SUBSCRIBE and deliver `handler(payload)`
    - glob patterns (`*`, `?`, `[...]`, Redis PSUBSCRIBE syntax) deliver
      `handler(payload, channel)`

Payloads travel as JSON. With `scope` set, every channel is namespaced as
"<scope>:<channel>" on the wire and the prefix is stripped on delivery.

Delivery: a single reader task polls the pub/sub connection and calls handlers
inline, in arrival order. Coroutine results are scheduled as tasks and never
awaited by the reader. Redis itself gives at-most-once delivery to connected
subscribers; nothing is queued while disconnected.

Usage:
    bus = RedisPubSub(RedisEventEmitterOptions(scope="orders"))
    await bus.subscribe("orders.created", handler)
    await bus.publish("orders.created", {"id": 42})
    await bus.quit()
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from redis_event_emitter.config.configs import RedisEventEmitterOptions
from redis_event_emitter.errors.errors import BusClosedError
from redis_event_emitter.metadata.metadata import is_pattern

logger = logging.getLogger(__name__)

# Back-off after a failed read before polling again (seconds)
_READ_ERROR_BACKOFF_S = 1.0


class RedisPubSub:
    """
    Redis-backed bus client.

    The connection is opened lazily by the first subscribe() or publish(), so a
    client that is never used never touches the network.
    """

    def __init__(
        self,
        options: Optional[RedisEventEmitterOptions] = None,
        *,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        self._options = options or RedisEventEmitterOptions()
        self._prefix = f"{self._options.scope}:" if self._options.scope else ""

        self._redis: Optional[aioredis.Redis] = client
        self._pubsub: Optional[aioredis.client.PubSub] = None
        self._reader: Optional[asyncio.Task[None]] = None
        self._connect_lock = asyncio.Lock()
        self._connected = False
        self._closed = False

        # wire channel / pattern -> handlers
        self._channel_handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._pattern_handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._pending: set[asyncio.Future[Any]] = set()

        # Statistics
        self._messages_received = 0
        self._decode_errors = 0
        self._handler_errors = 0

    @property
    def options(self) -> RedisEventEmitterOptions:
        return self._options

    @property
    def is_connected(self) -> bool:
        return self._connected and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def messages_received(self) -> int:
        return self._messages_received

    @property
    def decode_errors(self) -> int:
        """Messages dropped because their payload was not valid JSON."""
        return self._decode_errors

    @property
    def handler_errors(self) -> int:
        return self._handler_errors

    # --- Connection ---

    def _create_client(self) -> aioredis.Redis:
        kwargs = self._options.redis_kwargs()
        if self._options.url:
            return aioredis.from_url(self._options.url, **kwargs)
        return aioredis.Redis(**kwargs)

    async def connect(self) -> None:
        """Open the client and verify it with PING. Raises on connection failure."""
        if self._closed:
            raise BusClosedError("Cannot connect: bus is disconnected")
        async with self._connect_lock:
            if self._connected:
                return
            if self._redis is None:
                self._redis = self._create_client()
            await self._redis.ping()
            self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
            self._connected = True
        logger.info(f"RedisPubSub connected (scope={self._options.scope or '-'})")

    # --- Subscribe / publish ---

    async def subscribe(self, channel: str, handler: Callable[..., Any]) -> None:
        """Register `handler`; the Redis subscription is created once per distinct channel."""
        if self._closed:
            raise BusClosedError(f"Cannot subscribe to {channel!r}: bus is disconnected")
        await self.connect()
        assert self._pubsub is not None

        key = self._prefix + channel
        pattern = is_pattern(channel)
        handlers = self._pattern_handlers if pattern else self._channel_handlers
        # handler is recorded only once Redis has accepted the subscription
        if key not in handlers:
            if pattern:
                await self._pubsub.psubscribe(key)
            else:
                await self._pubsub.subscribe(key)
        handlers[key].append(handler)

        if self._reader is None:
            self._reader = asyncio.create_task(self._read_loop(), name="redis-pubsub-reader")
        logger.debug(f"RedisPubSub subscribed to {key!r}")

    on = subscribe

    async def publish(self, channel: str, payload: Any) -> int:
        """Publish a JSON-encoded payload; returns the number of receiving clients."""
        if self._closed:
            raise BusClosedError(f"Cannot publish to {channel!r}: bus is disconnected")
        await self.connect()
        assert self._redis is not None
        message = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        return int(await self._redis.publish(self._prefix + channel, message))

    emit = publish

    # --- Teardown ---

    async def disconnect(self) -> None:
        """Stop the reader and close connections. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True

        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"RedisPubSub reader had failed: {e}")
            self._reader = None

        try:
            if self._pubsub is not None:
                try:
                    await self._pubsub.aclose()
                except Exception as e:
                    logger.warning(f"Error closing pub/sub connection: {e}")
                self._pubsub = None
        finally:
            if self._redis is not None:
                try:
                    await self._redis.aclose()
                except Exception as e:
                    logger.warning(f"Error closing Redis client: {e}")

        self._channel_handlers.clear()
        self._pattern_handlers.clear()
        was_connected = self._connected
        self._connected = False
        if was_connected:
            logger.info(
                f"RedisPubSub disconnected ({self._messages_received} messages received)"
            )

    quit = disconnect

    # --- Reader ---

    async def _read_loop(self) -> None:
        assert self._pubsub is not None
        pubsub = self._pubsub
        timeout = self._options.poll_timeout_s
        while not self._closed:
            try:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=timeout
                )
            except asyncio.CancelledError:
                raise
            except RedisError as e:
                logger.warning(f"RedisPubSub read failed: {e}; retrying")
                await asyncio.sleep(_READ_ERROR_BACKOFF_S)
                continue
            except Exception as e:
                logger.error(f"RedisPubSub reader stopped: {e}", exc_info=True)
                raise
            if message is None:
                continue
            self._dispatch(message)

    def _dispatch(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind not in ("message", "pmessage"):
            return
        self._messages_received += 1

        channel = _as_str(message.get("channel"))
        raw = message.get("data")
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            self._decode_errors += 1
            logger.warning(f"Dropping undecodable message on {channel!r}: {e}")
            return

        if kind == "message":
            for handler in list(self._channel_handlers.get(channel, ())):
                self._invoke(handler, channel, payload)
        else:
            pattern = _as_str(message.get("pattern"))
            local_channel = channel
            if self._prefix and channel.startswith(self._prefix):
                local_channel = channel[len(self._prefix):]
            for handler in list(self._pattern_handlers.get(pattern, ())):
                self._invoke(handler, channel, payload, local_channel)

    def _invoke(self, handler: Callable[..., Any], channel: str, *args: Any) -> None:
        try:
            result = handler(*args)
        except Exception as e:
            self._handler_errors += 1
            logger.error(f"Handler error on {channel!r}: {e}", exc_info=True)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._handler_errors += 1
            logger.error(f"Async handler error: {task.exception()}")


def _as_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return "" if value is None else str(value)
