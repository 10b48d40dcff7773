"""
Event listener decorator.

Example:
    class OrderNotifier:
        @on_event("orders.created")
        def on_order_created(self, order: dict) -> None:
            ...

        @on_event("orders.*")
        async def on_any_order(self, order: dict, channel: str) -> None:
            ...

Exact channels deliver `(payload,)`; glob patterns deliver `(payload, channel)`.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar

from redis_event_emitter.metadata.metadata import (
    DEFAULT_REGISTRY,
    MetadataRegistry,
    validate_channel,
)

F = TypeVar("F", bound=Callable[..., Any])


def on_event(channel: str, *, registry: Optional[MetadataRegistry] = None) -> Callable[[F], F]:
    """
    Subscribes the decorated method to `channel` (name or glob pattern).

    The channel is validated here, so a bad declaration fails at import time
    instead of at application startup. The function is returned unchanged.
    """
    channel = validate_channel(channel)
    target_registry = registry if registry is not None else DEFAULT_REGISTRY

    def decorator(fn: F) -> F:
        target_registry.attach(fn, channel)
        return fn

    return decorator
