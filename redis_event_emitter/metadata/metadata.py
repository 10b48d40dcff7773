"""
Binding metadata and the registration table that holds it.

A method declares its channel once, at definition time. The record is kept in
an explicit table keyed by the function object, so lookups never have to
reflect over arbitrary instance attributes. The table holds its keys weakly:
a record lives exactly as long as the function it describes.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass
from typing import Any, Callable, Optional

from redis_event_emitter.errors.errors import DeclarationError

# Redis PSUBSCRIBE glob metacharacters
_GLOB_CHARS = frozenset("*?[")

# __wrapped__ chains longer than this are treated as cyclic
_MAX_UNWRAP_DEPTH = 100


@dataclass(frozen=True)
class OnEventMetadata:
    """
    `@on_event` decorator metadata.
    """

    # Event (name or pattern) to subscribe to.
    channel: str

    @property
    def is_pattern(self) -> bool:
        return is_pattern(self.channel)


def is_pattern(channel: str) -> bool:
    """True if the channel contains an unescaped glob metacharacter."""
    escaped = False
    for ch in channel:
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch in _GLOB_CHARS:
            return True
    return False


def validate_channel(channel: Any) -> str:
    """
    Reject channel values the bus could never match.

    Rules:
        - must be a non-empty str
        - no whitespace or control characters
        - a '[' character class must be closed
    """
    if not isinstance(channel, str):
        raise DeclarationError(
            f"Channel must be a string, got {type(channel).__name__}", channel=channel
        )
    if not channel:
        raise DeclarationError("Channel must be a non-empty string", channel=channel)
    for ch in channel:
        if ch.isspace() or not ch.isprintable():
            raise DeclarationError(
                "Channel must not contain whitespace or control characters", channel=channel
            )

    escaped = False
    open_bracket = False
    for ch in channel:
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
        elif ch == "[":
            open_bracket = True
        elif ch == "]" and open_bracket:
            open_bracket = False
    if open_bracket:
        raise DeclarationError("Channel pattern has an unclosed '['", channel=channel)
    return channel


def _unwrap_descriptor(target: Any) -> Any:
    # staticmethod / classmethod objects and bound methods carry the function in __func__
    if isinstance(target, (staticmethod, classmethod)):
        return target.__func__
    func = getattr(target, "__func__", None)
    if func is not None and callable(target):
        return func
    return target


class MetadataRegistry:
    """
    Table from method identity to its OnEventMetadata.

    - attach() runs once per method, at class definition time
    - lookup() is a pure query used at startup by the accessor
    """

    def __init__(self) -> None:
        self._table: weakref.WeakKeyDictionary[Callable[..., Any], OnEventMetadata] = (
            weakref.WeakKeyDictionary()
        )

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, target: object) -> bool:
        return self.lookup(target) is not None

    def attach(self, method: Any, channel: str) -> OnEventMetadata:
        channel = validate_channel(channel)
        func = _unwrap_descriptor(method)
        name = getattr(func, "__qualname__", None) or repr(func)

        if not callable(func):
            raise DeclarationError(
                "@on_event can only decorate callables", channel=channel, method_name=name
            )
        try:
            existing = self._table.get(func)
        except TypeError as exc:
            raise DeclarationError(
                "Method cannot be weakly referenced", channel=channel, method_name=name
            ) from exc
        if existing is not None:
            raise DeclarationError(
                f"Method already subscribed to {existing.channel!r}; "
                "binding metadata is immutable once attached",
                channel=channel,
                method_name=name,
            )

        meta = OnEventMetadata(channel=channel)
        self._table[func] = meta
        return meta

    def lookup(self, method: Any) -> Optional[OnEventMetadata]:
        target = _unwrap_descriptor(method)
        # Follow functools.wraps chains down to the decorated function
        for _ in range(_MAX_UNWRAP_DEPTH):
            try:
                meta = self._table.get(target)
            except TypeError:
                meta = None
            if meta is not None:
                return meta
            wrapped = getattr(target, "__wrapped__", None)
            if wrapped is None:
                return None
            target = _unwrap_descriptor(wrapped)
        return None


# Process-wide registry used by @on_event unless another one is injected
DEFAULT_REGISTRY = MetadataRegistry()
