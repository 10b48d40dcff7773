"""Telemetry Port Interface.

Contract: Receive structured events from the subscribers loader. Implementations must
not raise; the loader logs and drops telemetry failures.

Events emitted by EventSubscribersLoader (all carry `component`):
    - subscription_registered: channel, handler
    - subscribers_loaded: subscriptions, channels
    - subscribers_load_failed: error, error_type, subscriptions
    - handler_failed: handler, channel, error, error_type
    - subscribers_stopped: handler_invocations, handler_errors
"""

from __future__ import annotations

from typing import Any, Protocol


class Telemetry(Protocol):
    def log(self, event: str, **fields: Any) -> None: ...
