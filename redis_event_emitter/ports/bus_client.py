"""BusClient Port Interface.

Contract: Publish/subscribe transport the subscribers loader binds handlers to.

- subscribe(channel, handler): register `handler` for an exact channel name or a glob
  pattern. May raise on connection failure. Exact channels call `handler(payload)`,
  patterns call `handler(payload, channel)`.
- disconnect(): release the connection and, with it, every registered handler.
  Must be idempotent.

Ordering, delivery guarantees and pattern syntax belong to the implementation.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol


class BusClient(Protocol):
    async def subscribe(self, channel: str, handler: Callable[..., Any]) -> None:
        """Register `handler` for `channel` (name or pattern)."""
        ...

    async def disconnect(self) -> None:
        """Tear down the connection; all subscriptions are dropped."""
        ...
