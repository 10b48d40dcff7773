"""
Event Subscribers Loader - binds @on_event methods to the bus.

At bootstrap, every live component instance is scanned once. Each method that
carries binding metadata is wrapped in a callback bound to that exact instance
and subscribed on the bus client. At shutdown the bus connection is torn down,
which releases every subscription at once.

State Machine:
    [IDLE] --start()--> [LOADING] --success--> [LOADED] --stop()--> [STOPPED]
                             |
                          [FAILED] --stop()--> [STOPPED]
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from redis_event_emitter.core.scanner import MetadataScanner
from redis_event_emitter.errors.errors import (
    EnumerationError,
    HandlerError,
    SubscriptionError,
)
from redis_event_emitter.metadata.accessor import EventsMetadataAccessor
from redis_event_emitter.metadata.metadata import OnEventMetadata
from redis_event_emitter.ports.bus_client import BusClient
from redis_event_emitter.ports.component_registry import ComponentRegistry, ComponentWrapper
from redis_event_emitter.ports.telemetry import Telemetry

logger = logging.getLogger(__name__)


class LoaderState(str, Enum):
    """State machine for EventSubscribersLoader."""

    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SubscriptionRegistration:
    """One live (instance, method) -> channel binding created by the load pass."""

    channel: str
    instance: Any = field(repr=False)
    method_name: str
    callback: Callable[..., None] = field(repr=False)

    @property
    def handler_name(self) -> str:
        return f"{type(self.instance).__name__}.{self.method_name}"


@dataclass
class LoaderStats:
    """Statistics for the load pass and for handler invocations."""

    instances_scanned: int = 0
    instances_skipped: int = 0
    methods_scanned: int = 0
    methods_skipped: int = 0
    subscriptions: int = 0
    duplicates_skipped: int = 0
    handler_invocations: int = 0
    handler_errors: int = 0


@dataclass(frozen=True)
class _Listener:
    method_name: str
    function: Any
    metadata: OnEventMetadata


class EventSubscribersLoader:
    """
    Subscribes every @on_event method of every static component to the bus.

    Usage:
        loader = EventSubscribersLoader(DiscoveryService(container), bus, EventsMetadataAccessor())
        await loader.start()
        # ... messages are delivered to the bound methods ...
        await loader.stop()

    Inside a Container, start() and stop() run from the on_application_bootstrap /
    on_application_shutdown hooks.
    """

    def __init__(
        self,
        discovery: ComponentRegistry,
        bus: BusClient,
        metadata_accessor: EventsMetadataAccessor,
        metadata_scanner: Optional[MetadataScanner] = None,
        telemetry: Optional[Telemetry] = None,
        name: str = "event_subscribers",
    ) -> None:
        self._discovery = discovery
        self._bus = bus
        self._metadata_accessor = metadata_accessor
        self._metadata_scanner = metadata_scanner or MetadataScanner()
        self._telemetry = telemetry
        self._name = name

        # State
        self._state = LoaderState.IDLE
        self._disconnected = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self._registrations: list[SubscriptionRegistration] = []
        self._stats = LoaderStats()

        # In-flight handler tasks (strong refs until done)
        self._pending: set[asyncio.Future[Any]] = set()
        self._on_error: list[Callable[[HandlerError], None]] = []

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def stats(self) -> LoaderStats:
        return self._stats

    @property
    def registrations(self) -> tuple[SubscriptionRegistration, ...]:
        return tuple(self._registrations)

    def on_handler_error(self, callback: Callable[[HandlerError], None]) -> None:
        """
        Register an error hook: callback(HandlerError). The original exception is
        available as `__cause__`.
        """
        self._on_error.append(callback)

    # --- Lifecycle hooks ---

    async def on_application_bootstrap(self) -> None:
        await self.start()

    async def on_application_shutdown(self) -> None:
        await self.stop()

    async def start(self) -> None:
        """
        Run the single scan-and-bind pass.

        Raises:
            SubscriptionError: If the bus client rejects a subscription. The bus is
                disconnected before the error propagates.
        """
        if self._state != LoaderState.IDLE:
            logger.warning(
                f"[{self._name}] Load pass already ran (state={self._state.value}); skipping"
            )
            return

        logger.info(f"[{self._name}] Loading event listeners...")
        self._state = LoaderState.LOADING
        self._loop = asyncio.get_running_loop()

        try:
            await self.load_event_listeners()
        except Exception as e:
            self._state = LoaderState.FAILED
            logger.error(f"[{self._name}] Failed to load event listeners: {e}")
            self._emit(
                "subscribers_load_failed",
                error=str(e),
                error_type=type(e).__name__,
                subscriptions=len(self._registrations),
            )
            await self._disconnect_bus()
            raise

        self._state = LoaderState.LOADED
        logger.info(
            f"[{self._name}] Bound {self._stats.subscriptions} handler(s) "
            f"across {self._stats.instances_scanned} component(s)"
        )
        self._emit(
            "subscribers_loaded",
            subscriptions=self._stats.subscriptions,
            channels=sorted({r.channel for r in self._registrations}),
        )

    async def stop(self) -> None:
        """
        Disconnect the bus, at most once per loader.

        Runs even if start() never did: other components may already have used the
        shared bus. A later start() is ignored.
        """
        if self._state == LoaderState.STOPPED:
            return
        if self._state == LoaderState.IDLE:
            logger.debug(f"[{self._name}] stop() before start(); releasing bus only")

        logger.info(f"[{self._name}] Stopping; releasing bus connection")
        self._state = LoaderState.STOPPED
        await self._disconnect_bus()
        self._emit(
            "subscribers_stopped",
            handler_invocations=self._stats.handler_invocations,
            handler_errors=self._stats.handler_errors,
        )

    async def _disconnect_bus(self) -> None:
        if self._disconnected:
            return
        self._disconnected = True
        try:
            await self._bus.disconnect()
        except Exception as e:
            logger.warning(f"[{self._name}] Error disconnecting bus: {e}")

    async def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        """Barrier. Blocks until every in-flight async handler has finished."""

        async def _drain() -> None:
            while self._pending:
                await asyncio.gather(*list(self._pending), return_exceptions=True)

        await asyncio.wait_for(_drain(), timeout=timeout)

    # --- Scan & bind ---

    async def load_event_listeners(self) -> list[SubscriptionRegistration]:
        wrappers = [*self._discovery.get_providers(), *self._discovery.get_controllers()]
        seen: set[tuple[int, int]] = set()

        for wrapper in wrappers:
            if not self._is_eligible(wrapper):
                continue
            instance = wrapper.instance
            name = getattr(wrapper, "name", type(instance).__name__)

            try:
                listeners = self._collect_listeners(name, instance)
            except EnumerationError as e:
                self._stats.instances_skipped += 1
                logger.warning(
                    f"[{self._name}] {e}; skipping",
                    extra={"event": "instance_skipped", "instance": name},
                )
                continue
            self._stats.instances_scanned += 1

            for listener in listeners:
                key = (id(instance), id(listener.function))
                if key in seen:
                    self._stats.duplicates_skipped += 1
                    logger.debug(
                        f"[{self._name}] {name}.{listener.method_name} "
                        "discovered twice; subscribing once"
                    )
                    continue
                seen.add(key)
                await self._subscribe_to_event_if_listener(instance, listener)

        return list(self._registrations)

    def _is_eligible(self, wrapper: ComponentWrapper) -> bool:
        name = getattr(wrapper, "name", repr(wrapper))
        try:
            is_static = wrapper.is_dependency_tree_static()
        except Exception as e:
            logger.warning(f"[{self._name}] Cannot resolve scope of {name}: {e}; skipping")
            self._stats.instances_skipped += 1
            return False

        if not is_static:
            logger.debug(f"[{self._name}] Skipping {name}: dependency tree is not static")
            self._stats.instances_skipped += 1
            return False
        if wrapper.instance is None:
            logger.debug(f"[{self._name}] Skipping {name}: no instance")
            self._stats.instances_skipped += 1
            return False
        return True

    def _collect_listeners(self, name: str, instance: Any) -> list[_Listener]:
        """
        Raises:
            EnumerationError: If the instance's class chain cannot be scanned.
        """
        prototype = type(instance)

        def check(method_key: str) -> Optional[_Listener]:
            self._stats.methods_scanned += 1
            raw = self._metadata_scanner.get_method(prototype, method_key)
            meta = self._metadata_accessor.get_event_handler_metadata(raw)
            if meta is None:
                return None
            function = getattr(raw, "__func__", raw)
            return _Listener(method_name=method_key, function=function, metadata=meta)

        try:
            return self._metadata_scanner.scan_from_prototype(instance, prototype, check)
        except Exception as e:
            raise EnumerationError(
                f"Cannot introspect {name}: {e}", instance_name=name, component=self._name
            ) from e

    async def _subscribe_to_event_if_listener(self, instance: Any, listener: _Listener) -> None:
        channel = listener.metadata.channel
        handler_name = f"{type(instance).__name__}.{listener.method_name}"

        try:
            method = getattr(instance, listener.method_name)
        except Exception as e:
            self._stats.methods_skipped += 1
            logger.warning(f"[{self._name}] Cannot bind {handler_name}: {e}; skipping")
            return

        callback = self._bind(method, handler_name, channel)
        try:
            await self._bus.subscribe(channel, callback)
        except Exception as e:
            raise SubscriptionError(
                f"Failed to subscribe {handler_name} to {channel!r}: {e}",
                channel=channel,
                handler_name=handler_name,
                component=self._name,
            ) from e

        self._registrations.append(
            SubscriptionRegistration(
                channel=channel,
                instance=instance,
                method_name=listener.method_name,
                callback=callback,
            )
        )
        self._stats.subscriptions += 1
        logger.debug(f"[{self._name}] Subscribed {handler_name} to {channel!r}")
        self._emit("subscription_registered", channel=channel, handler=handler_name)

    def _bind(
        self, method: Callable[..., Any], handler_name: str, channel: str
    ) -> Callable[..., None]:
        """
        Wrap a bound method as a fire-and-forget bus handler.

        The handler never raises into the bus: sync errors are reported here,
        awaitable results are scheduled and reported when they fail.
        """

        def callback(*args: Any) -> None:
            self._stats.handler_invocations += 1
            try:
                result = method(*args)
            except Exception as e:
                self._report_handler_error(handler_name, channel, e)
                return
            if inspect.isawaitable(result):
                self._schedule(result, handler_name, channel)

        callback.__name__ = handler_name.rsplit(".", 1)[-1]
        callback.__qualname__ = handler_name
        return callback

    def _schedule(self, awaitable: Awaitable[Any], handler_name: str, channel: str) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Delivered off-loop (e.g. a bus reader thread): hand over to the bootstrap loop
            loop = self._loop
            if loop is None or loop.is_closed():
                if inspect.iscoroutine(awaitable):
                    awaitable.close()
                self._report_handler_error(
                    handler_name, channel, RuntimeError("No event loop to run async handler")
                )
                return
            loop.call_soon_threadsafe(self._spawn, awaitable, handler_name, channel)
            return
        self._spawn(awaitable, handler_name, channel)

    def _spawn(self, awaitable: Awaitable[Any], handler_name: str, channel: str) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_task_done(t, handler_name, channel))

    def _on_task_done(self, task: asyncio.Future[Any], handler_name: str, channel: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._report_handler_error(handler_name, channel, exc)

    def _report_handler_error(self, handler_name: str, channel: str, exc: BaseException) -> None:
        self._stats.handler_errors += 1
        logger.error(
            f"[{self._name}] Handler {handler_name} failed on {channel!r}: {exc}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        error = HandlerError(
            f"Handler {handler_name} failed: {exc}",
            handler_name=handler_name,
            channel=channel,
            component=self._name,
        )
        error.__cause__ = exc
        for cb in list(self._on_error):
            try:
                cb(error)
            except Exception as hook_exc:
                logger.warning(f"[{self._name}] on_handler_error hook failed: {hook_exc}")
        self._emit(
            "handler_failed",
            handler=handler_name,
            channel=channel,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    def _emit(self, event: str, **fields: Any) -> None:
        if self._telemetry is None:
            return
        try:
            self._telemetry.log(event, component=self._name, **fields)
        except Exception as e:
            logger.debug(f"[{self._name}] Telemetry failed for {event}: {e}")
