from __future__ import annotations

from typing import Any, Optional

from redis_event_emitter.metadata.metadata import (
    DEFAULT_REGISTRY,
    MetadataRegistry,
    OnEventMetadata,
)


class EventsMetadataAccessor:
    """Read side of the registration table, consulted by the subscribers loader."""

    def __init__(self, registry: Optional[MetadataRegistry] = None) -> None:
        self._registry = registry if registry is not None else DEFAULT_REGISTRY

    @property
    def registry(self) -> MetadataRegistry:
        return self._registry

    def get_event_handler_metadata(self, target: Any) -> Optional[OnEventMetadata]:
        """Return the metadata attached to `target`, or None if it was never decorated."""
        return self._registry.lookup(target)
