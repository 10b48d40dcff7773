"""
Custom exceptions for the event emitter.

Exception hierarchy:
- EventEmitterError (base)
  - DeclarationError: Invalid channel or repeated @on_event on one method
  - EnumerationError: A component instance or method cannot be introspected
  - SubscriptionError: The bus client failed to establish a subscription
  - HandlerError: A bound handler raised while processing a message
  - ConfigurationError: Invalid bus connection configuration
  - ContainerError: Unknown provider, duplicate token or dependency cycle
  - BusClosedError: Operation on a bus client that was already disconnected
"""

from __future__ import annotations

from typing import Any, Optional


class EventEmitterError(Exception):
    """Base exception for all event emitter errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class DeclarationError(EventEmitterError):
    """Raised at definition time when a channel declaration is rejected."""

    def __init__(
        self,
        message: str,
        *,
        channel: Optional[Any] = None,
        method_name: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.channel = channel
        self.method_name = method_name
        details = details or {}
        if channel is not None:
            details["channel"] = repr(channel)
        if method_name:
            details["method_name"] = method_name
        super().__init__(message, component=component, details=details)


class EnumerationError(EventEmitterError):
    """Raised when a component instance cannot be scanned for handlers."""

    def __init__(
        self,
        message: str,
        *,
        instance_name: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.instance_name = instance_name
        details = details or {}
        if instance_name:
            details["instance_name"] = instance_name
        super().__init__(message, component=component, details=details)


class SubscriptionError(EventEmitterError):
    """Raised when the bus client fails to subscribe a handler."""

    def __init__(
        self,
        message: str,
        *,
        channel: Optional[str] = None,
        handler_name: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.channel = channel
        self.handler_name = handler_name
        details = details or {}
        if channel:
            details["channel"] = channel
        if handler_name:
            details["handler_name"] = handler_name
        super().__init__(message, component=component, details=details)


class HandlerError(EventEmitterError):
    """Raised when a bound handler fails to process a message."""

    def __init__(
        self,
        message: str,
        *,
        handler_name: Optional[str] = None,
        channel: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.handler_name = handler_name
        self.channel = channel
        details = details or {}
        if handler_name:
            details["handler_name"] = handler_name
        if channel:
            details["channel"] = channel
        super().__init__(message, component=component, details=details)


class ConfigurationError(EventEmitterError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class ContainerError(EventEmitterError):
    """Raised by the component container for wiring mistakes."""

    def __init__(
        self,
        message: str,
        *,
        token: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.token = token
        details = details or {}
        if token is not None:
            details["token"] = getattr(token, "__name__", str(token))
        super().__init__(message, component=component, details=details)


class BusClosedError(EventEmitterError):
    "Raised when a disconnected bus client is asked to subscribe or publish."
