"""
Redis Event Emitter.

Binds component methods to publish/subscribe channels. Methods declare their
channel with @on_event; at application bootstrap the subscribers loader scans
every live component and subscribes the declared methods on a shared bus
client, and at shutdown it disconnects that client.

Components:
- on_event: Declaration decorator (definition time)
- EventsMetadataAccessor: Looks up the channel declared on a method
- EventSubscribersLoader: Scan-and-bind pass and shutdown
- Container / DiscoveryService: Component registry the loader enumerates
- RedisPubSub / InMemoryPubSub: Bus clients
- RedisEventEmitterModule: Composition (for_root)

Usage:
    from redis_event_emitter import Container, RedisEventEmitterModule, on_event

    class OrderNotifier:
        @on_event("orders.created")
        def on_order_created(self, order: dict) -> None:
            ...

    container = Container()
    container.register(OrderNotifier)
    RedisEventEmitterModule.for_root(container, {"host": "localhost"})
    await container.bootstrap()
"""

from redis_event_emitter.clients.inmemory import InMemoryBroker, InMemoryPubSub
from redis_event_emitter.clients.redis_pubsub import RedisPubSub
from redis_event_emitter.config.config_loader import ConfigLoader
from redis_event_emitter.config.configs import RedisEventEmitterOptions
from redis_event_emitter.core.container import Container, DiscoveryService, InstanceWrapper, Scope
from redis_event_emitter.core.loader import (
    EventSubscribersLoader,
    LoaderState,
    LoaderStats,
    SubscriptionRegistration,
)
from redis_event_emitter.core.module import BUS_CLIENT, RedisEventEmitterModule
from redis_event_emitter.core.scanner import MetadataScanner
from redis_event_emitter.decorators.on_event import on_event
from redis_event_emitter.errors.errors import (
    BusClosedError,
    ConfigurationError,
    ContainerError,
    DeclarationError,
    EnumerationError,
    EventEmitterError,
    HandlerError,
    SubscriptionError,
)
from redis_event_emitter.metadata.accessor import EventsMetadataAccessor
from redis_event_emitter.metadata.metadata import (
    DEFAULT_REGISTRY,
    MetadataRegistry,
    OnEventMetadata,
)

__all__ = [
    # Declaration
    "on_event",
    "OnEventMetadata",
    "MetadataRegistry",
    "DEFAULT_REGISTRY",
    "EventsMetadataAccessor",
    # Loading
    "EventSubscribersLoader",
    "LoaderState",
    "LoaderStats",
    "SubscriptionRegistration",
    "MetadataScanner",
    # Composition
    "Container",
    "DiscoveryService",
    "InstanceWrapper",
    "Scope",
    "RedisEventEmitterModule",
    "BUS_CLIENT",
    # Bus clients & config
    "RedisPubSub",
    "InMemoryBroker",
    "InMemoryPubSub",
    "RedisEventEmitterOptions",
    "ConfigLoader",
    # Errors
    "EventEmitterError",
    "DeclarationError",
    "EnumerationError",
    "SubscriptionError",
    "HandlerError",
    "ConfigurationError",
    "ContainerError",
    "BusClosedError",
]
