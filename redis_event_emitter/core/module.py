"""
Composition root for the event emitter.

RedisEventEmitterModule.for_root() creates the one bus client shared by every
subscription and registers the loader and its collaborators in the container.
Container.bootstrap() then runs the load pass; Container.shutdown() disconnects.

Usage:
    container = Container()
    container.register(OrderNotifier)
    RedisEventEmitterModule.for_root(container, RedisEventEmitterOptions(scope="shop"))

    await container.bootstrap()
    ...
    await container.shutdown()
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from redis_event_emitter.clients.redis_pubsub import RedisPubSub
from redis_event_emitter.config.configs import RedisEventEmitterOptions
from redis_event_emitter.core.container import Container, DiscoveryService
from redis_event_emitter.core.loader import EventSubscribersLoader
from redis_event_emitter.core.scanner import MetadataScanner
from redis_event_emitter.errors.errors import ConfigurationError
from redis_event_emitter.metadata.accessor import EventsMetadataAccessor
from redis_event_emitter.metadata.metadata import MetadataRegistry
from redis_event_emitter.ports.bus_client import BusClient
from redis_event_emitter.ports.telemetry import Telemetry

logger = logging.getLogger(__name__)

# Container token of the shared bus client
BUS_CLIENT = "BUS_CLIENT"


def _validate_options(options: Mapping[str, Any]) -> RedisEventEmitterOptions:
    try:
        return RedisEventEmitterOptions.model_validate(dict(options))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ConfigurationError(
            f"Invalid event emitter options: {first.get('msg')}",
            field=field,
            value=first.get("input"),
            details={"errors": exc.error_count()},
        ) from exc


class RedisEventEmitterModule:
    """Handle on the providers registered by for_root()."""

    def __init__(self, container: Container, bus: BusClient) -> None:
        self._container = container
        self._bus = bus

    @property
    def bus(self) -> BusClient:
        return self._bus

    @property
    def loader(self) -> EventSubscribersLoader:
        return self._container.get(EventSubscribersLoader)

    @staticmethod
    def for_root(
        container: Container,
        options: Union[RedisEventEmitterOptions, Mapping[str, Any], None] = None,
        *,
        bus: Optional[BusClient] = None,
        telemetry: Optional[Telemetry] = None,
        registry: Optional[MetadataRegistry] = None,
    ) -> "RedisEventEmitterModule":
        """
        Register the emitter in `container`.

        Args:
            container: Application container (not yet initialized)
            options: Redis connection options; ignored when `bus` is given
            bus: Pre-built bus client (e.g. InMemoryPubSub for tests)
            telemetry: Optional structured event sink for the loader
            registry: Metadata table to read; defaults to the process-wide one

        Raises:
            ConfigurationError: If `options` is a mapping that does not validate.
        """
        if bus is None:
            if isinstance(options, Mapping):
                options = _validate_options(options)
            bus = RedisPubSub(options)

        container.register(BUS_CLIENT, use_value=bus)
        container.register(EventsMetadataAccessor, use_value=EventsMetadataAccessor(registry))
        container.register(MetadataScanner)
        container.register(DiscoveryService, use_value=DiscoveryService(container))
        container.register(
            EventSubscribersLoader,
            use_factory=lambda discovery, client, accessor, scanner: EventSubscribersLoader(
                discovery, client, accessor, scanner, telemetry=telemetry
            ),
            inject=[DiscoveryService, BUS_CLIENT, EventsMetadataAccessor, MetadataScanner],
        )
        logger.debug(f"Event emitter registered in container {container.name!r}")
        return RedisEventEmitterModule(container, bus)
