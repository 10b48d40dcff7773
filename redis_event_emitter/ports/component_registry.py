"""ComponentRegistry Port Interface.

Contract: Read-only enumeration of live component instances, split into providers and
controllers. The loader only binds instances whose whole dependency tree is static
(created once at bootstrap, not per request).
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence


class ComponentWrapper(Protocol):
    name: str
    instance: Any

    def is_dependency_tree_static(self) -> bool: ...


class ComponentRegistry(Protocol):
    def get_providers(self) -> Sequence[ComponentWrapper]: ...

    def get_controllers(self) -> Sequence[ComponentWrapper]: ...
