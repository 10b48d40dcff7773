"""
Component container.

Holds the application's providers and controllers, creates their instances and
drives the bootstrap/shutdown hooks. DiscoveryService is the read-only view the
subscribers loader enumerates.

Lifecycle:
    container.register(...)          # declare providers / controllers
    await container.bootstrap()      # create static instances, run on_application_bootstrap
    ...
    await container.shutdown()       # run on_application_shutdown in reverse order
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Hashable, Iterable, Optional

from redis_event_emitter.errors.errors import ContainerError

logger = logging.getLogger(__name__)

_MISSING: Any = object()


class Scope(str, Enum):
    """Instance lifetime of a provider."""

    DEFAULT = "default"  # one shared instance, created at bootstrap
    REQUEST = "request"  # one instance per request context, never created at bootstrap


def _token_name(token: Any) -> str:
    return getattr(token, "__name__", None) or str(token)


@dataclass(eq=False)
class InstanceWrapper:
    """A registered provider or controller and, once created, its instance."""

    token: Any
    name: str
    factory: Optional[Callable[..., Any]]
    scope: Scope = Scope.DEFAULT
    inject: tuple[Any, ...] = ()
    is_controller: bool = False
    instance: Any = None

    # resolved by the container during init()
    dependencies: list["InstanceWrapper"] = field(default_factory=list, repr=False)

    def is_dependency_tree_static(self) -> bool:
        """True if this wrapper and every transitive dependency are DEFAULT scoped."""
        return self._compute_static(set())

    def _compute_static(self, visiting: set[int]) -> bool:
        if self.scope != Scope.DEFAULT:
            return False
        if id(self) in visiting:
            return True
        visiting.add(id(self))
        return all(dep._compute_static(visiting) for dep in self.dependencies)


class Container:
    """
    Minimal dependency container.

    Providers are keyed by token (usually the class). Dependencies are declared
    explicitly with `inject=[token, ...]` and passed positionally to the factory.
    """

    def __init__(self, name: str = "app") -> None:
        self._name = name
        self._wrappers: dict[Hashable, InstanceWrapper] = {}
        self._order: list[InstanceWrapper] = []
        # context_id -> token -> instance
        self._request_instances: dict[Hashable, dict[Hashable, Any]] = {}
        self._initialized = False
        self._bootstrapped = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_bootstrapped(self) -> bool:
        return self._bootstrapped

    # --- Registration ---

    def register(
        self,
        token: Hashable,
        *,
        use_class: Optional[type] = None,
        use_value: Any = _MISSING,
        use_factory: Optional[Callable[..., Any]] = None,
        inject: Iterable[Hashable] = (),
        scope: Scope = Scope.DEFAULT,
    ) -> InstanceWrapper:
        """
        Register a provider.

        Exactly one of use_class / use_value / use_factory may be given. With none,
        `token` itself must be a class and is used as use_class.
        """
        return self._register(
            token,
            use_class=use_class,
            use_value=use_value,
            use_factory=use_factory,
            inject=inject,
            scope=scope,
            is_controller=False,
        )

    def register_controller(
        self,
        cls: type,
        *,
        inject: Iterable[Hashable] = (),
        scope: Scope = Scope.DEFAULT,
    ) -> InstanceWrapper:
        return self._register(
            cls,
            use_class=cls,
            use_value=_MISSING,
            use_factory=None,
            inject=inject,
            scope=scope,
            is_controller=True,
        )

    def _register(
        self,
        token: Hashable,
        *,
        use_class: Optional[type],
        use_value: Any,
        use_factory: Optional[Callable[..., Any]],
        inject: Iterable[Hashable],
        scope: Scope,
        is_controller: bool,
    ) -> InstanceWrapper:
        if self._initialized:
            raise ContainerError("Container already initialized", token=token)
        if token in self._wrappers:
            raise ContainerError(f"Duplicate provider token {_token_name(token)!r}", token=token)

        given = sum(x is not None for x in (use_class, use_factory)) + (use_value is not _MISSING)
        if given > 1:
            raise ContainerError(
                "Only one of use_class, use_value, use_factory may be given", token=token
            )
        if given == 0:
            if not inspect.isclass(token):
                raise ContainerError(
                    f"Token {_token_name(token)!r} is not a class; pass use_class, "
                    "use_value or use_factory",
                    token=token,
                )
            use_class = token

        wrapper = InstanceWrapper(
            token=token,
            name=_token_name(token),
            factory=use_class or use_factory,
            scope=Scope(scope),
            inject=tuple(inject),
            is_controller=is_controller,
        )
        if use_value is not _MISSING:
            wrapper.factory = None
            wrapper.instance = use_value
            wrapper.scope = Scope.DEFAULT

        self._wrappers[token] = wrapper
        self._order.append(wrapper)
        logger.debug(f"[{self._name}] Registered {wrapper.name} (scope={wrapper.scope.value})")
        return wrapper

    # --- Discovery ---

    def get_providers(self) -> list[InstanceWrapper]:
        return [w for w in self._order if not w.is_controller]

    def get_controllers(self) -> list[InstanceWrapper]:
        return [w for w in self._order if w.is_controller]

    def get_wrapper(self, token: Hashable) -> InstanceWrapper:
        try:
            return self._wrappers[token]
        except KeyError:
            raise ContainerError(
                f"Unknown provider {_token_name(token)!r}", token=token
            ) from None

    # --- Instantiation ---

    def init(self) -> None:
        """Resolve the dependency graph and create every static instance. Idempotent."""
        if self._initialized:
            return
        for wrapper in self._order:
            wrapper.dependencies = [self.get_wrapper(t) for t in wrapper.inject]
        for wrapper in self._order:
            if wrapper.is_dependency_tree_static():
                self._instantiate(wrapper, resolving=[])
            else:
                logger.debug(f"[{self._name}] Deferring {wrapper.name}: request-scoped tree")
        self._initialized = True

    def _instantiate(self, wrapper: InstanceWrapper, resolving: list[InstanceWrapper]) -> Any:
        if wrapper.instance is not None or wrapper.factory is None:
            return wrapper.instance
        if wrapper in resolving:
            cycle = " -> ".join(w.name for w in [*resolving, wrapper])
            raise ContainerError(f"Dependency cycle: {cycle}", token=wrapper.token)

        resolving.append(wrapper)
        args = [self._instantiate(dep, resolving) for dep in wrapper.dependencies]
        resolving.pop()
        wrapper.instance = wrapper.factory(*args)
        return wrapper.instance

    def get(self, token: Hashable) -> Any:
        """Return the shared instance for `token`."""
        wrapper = self.get_wrapper(token)
        self.init()
        if not wrapper.is_dependency_tree_static():
            raise ContainerError(
                f"{wrapper.name} is request-scoped; use resolve(token, context_id)",
                token=token,
            )
        return wrapper.instance

    def resolve(self, token: Hashable, context_id: Hashable) -> Any:
        """Resolve `token` inside a request context; instances are cached per context."""
        wrapper = self.get_wrapper(token)
        self.init()
        if wrapper.is_dependency_tree_static():
            return wrapper.instance

        cache = self._request_instances.setdefault(context_id, {})
        return self._resolve_in_context(wrapper, cache, resolving=[])

    def _resolve_in_context(
        self,
        wrapper: InstanceWrapper,
        cache: dict[Hashable, Any],
        resolving: list[InstanceWrapper],
    ) -> Any:
        if wrapper.is_dependency_tree_static():
            return wrapper.instance
        if wrapper.token in cache:
            return cache[wrapper.token]
        if wrapper in resolving:
            cycle = " -> ".join(w.name for w in [*resolving, wrapper])
            raise ContainerError(f"Dependency cycle: {cycle}", token=wrapper.token)

        resolving.append(wrapper)
        args = [self._resolve_in_context(dep, cache, resolving) for dep in wrapper.dependencies]
        resolving.pop()
        assert wrapper.factory is not None
        instance = wrapper.factory(*args)
        cache[wrapper.token] = instance
        return instance

    def release_context(self, context_id: Hashable) -> None:
        self._request_instances.pop(context_id, None)

    # --- Lifecycle ---

    async def bootstrap(self) -> None:
        """
        Create static instances, then await every `on_application_bootstrap` hook in
        registration order. A failing hook aborts the bootstrap.
        """
        if self._bootstrapped:
            logger.warning(f"[{self._name}] Container already bootstrapped")
            return
        self.init()
        for wrapper in self._static_instances():
            hook = getattr(wrapper.instance, "on_application_bootstrap", None)
            if callable(hook):
                result = hook()
                if inspect.isawaitable(result):
                    await result
        self._bootstrapped = True
        logger.info(f"[{self._name}] Application bootstrapped ({len(self._order)} components)")

    async def shutdown(self) -> None:
        """Await every `on_application_shutdown` hook in reverse registration order."""
        for wrapper in reversed(self._static_instances()):
            hook = getattr(wrapper.instance, "on_application_shutdown", None)
            if not callable(hook):
                continue
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"[{self._name}] Shutdown hook of {wrapper.name} failed: {e}")
        self._request_instances.clear()
        self._bootstrapped = False
        logger.info(f"[{self._name}] Application shut down")

    def _static_instances(self) -> list[InstanceWrapper]:
        return [
            w
            for w in self._order
            if w.instance is not None and w.is_dependency_tree_static()
        ]


class DiscoveryService:
    """Read-only enumeration of a container's providers and controllers."""

    def __init__(self, container: Container) -> None:
        self._container = container

    def get_providers(self) -> list[InstanceWrapper]:
        return self._container.get_providers()

    def get_controllers(self) -> list[InstanceWrapper]:
        return self._container.get_controllers()
