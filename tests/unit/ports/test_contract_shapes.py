import importlib
import inspect

import pytest

# Mapping of module -> (ProtocolName, required_methods: {name: arity})
PORT_PROTOCOLS = {
    "redis_event_emitter.ports.bus_client": ("BusClient", {"subscribe": 2, "disconnect": 0}),
    "redis_event_emitter.ports.component_registry": (
        "ComponentRegistry",
        {"get_providers": 0, "get_controllers": 0},
    ),
    "redis_event_emitter.ports.component_registry#wrapper": (
        "ComponentWrapper",
        {"is_dependency_tree_static": 0},
    ),
    "redis_event_emitter.ports.telemetry": ("Telemetry", {"log": -1}),  # variable kwargs
}


@pytest.mark.parametrize("module_name,meta", PORT_PROTOCOLS.items())
def test_required_port_signatures(module_name, meta):
    proto_name, methods = meta
    module = importlib.import_module(module_name.split("#")[0])
    proto = getattr(module, proto_name)
    assert inspect.isclass(proto), f"{proto_name} not a class"
    # For each required method ensure existence and arg count (-1 means skip)
    for method_name, arity in methods.items():
        fn = getattr(proto, method_name, None)
        assert fn is not None, f"Missing method {method_name} on {proto_name}"
        if arity >= 0:
            sig = inspect.signature(fn)
            # remove self / cls
            params = [p for p in sig.parameters.values() if p.kind == p.POSITIONAL_OR_KEYWORD][1:]
            assert (
                len(params) == arity
            ), f"{proto_name}.{method_name} expected {arity} args got {len(params)}"


@pytest.mark.parametrize(
    "path,cls_name",
    [
        ("redis_event_emitter.clients.inmemory", "InMemoryPubSub"),
        ("redis_event_emitter.clients.redis_pubsub", "RedisPubSub"),
    ],
)
def test_bus_clients_implement_port(path, cls_name):
    cls = getattr(importlib.import_module(path), cls_name)
    for method_name in ("subscribe", "disconnect"):
        assert inspect.iscoroutinefunction(getattr(cls, method_name)), method_name


def test_container_wrappers_implement_port():
    from redis_event_emitter.core.container import Container, DiscoveryService

    class Component:
        pass

    container = Container()
    container.register(Component)
    container.init()

    (wrapper,) = DiscoveryService(container).get_providers()
    assert wrapper.name == "Component"
    assert isinstance(wrapper.instance, Component)
    assert wrapper.is_dependency_tree_static() is True
