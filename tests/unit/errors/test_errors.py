"""
Unit tests for the error hierarchy.
"""

import pytest

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


@pytest.mark.parametrize(
    "error_cls",
    [
        DeclarationError,
        EnumerationError,
        SubscriptionError,
        HandlerError,
        ConfigurationError,
        ContainerError,
        BusClosedError,
    ],
)
def test_hierarchy(error_cls):
    assert issubclass(error_cls, EventEmitterError)


def test_base_error_formatting():
    error = EventEmitterError("boom", component="loader", details={"attempt": 1})

    assert str(error) == "boom [component=loader] [details={'attempt': 1}]"


def test_base_error_without_context():
    assert str(EventEmitterError("boom")) == "boom"


def test_subscription_error_fields():
    error = SubscriptionError(
        "Failed", channel="orders.created", handler_name="N.on_created", component="loader"
    )

    assert error.channel == "orders.created"
    assert error.handler_name == "N.on_created"
    assert error.details == {"channel": "orders.created", "handler_name": "N.on_created"}


def test_declaration_error_records_channel_repr():
    error = DeclarationError("bad", channel=42, method_name="N.on_created")

    assert error.channel == 42
    assert error.details == {"channel": "42", "method_name": "N.on_created"}


def test_container_error_uses_token_name():
    class Repository:
        pass

    error = ContainerError("Unknown provider", token=Repository)

    assert error.details == {"token": "Repository"}


def test_configuration_error_stringifies_value():
    error = ConfigurationError("bad port", field="port", value=70000)

    assert error.value == 70000
    assert error.details == {"field": "port", "value": "70000"}
