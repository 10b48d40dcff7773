"""
Method discovery over a component's class chain.

Only class dictionaries are inspected, never instance attributes: properties
and other descriptors are not evaluated while scanning.
"""

from __future__ import annotations

import inspect
import weakref
from typing import Any, Callable, Optional, TypeVar

R = TypeVar("R")


def _is_method(value: Any) -> bool:
    if isinstance(value, (staticmethod, classmethod)):
        return True
    return inspect.isfunction(value)


class MetadataScanner:
    def __init__(self) -> None:
        # class -> method names (first definition wins)
        self._cache: weakref.WeakKeyDictionary[type, tuple[str, ...]] = (
            weakref.WeakKeyDictionary()
        )

    def get_all_method_names(self, prototype: Optional[type]) -> list[str]:
        """
        Names of all methods reachable through the MRO of `prototype`, excluding
        `object`. Subclass definitions shadow base definitions; dunders are skipped.
        """
        if prototype is None:
            return []
        cached = self._cache.get(prototype)
        if cached is not None:
            return list(cached)

        seen: set[str] = set()
        names: list[str] = []
        for klass in prototype.__mro__:
            if klass is object:
                continue
            for name, value in vars(klass).items():
                if name in seen:
                    continue
                # an attribute shadows every base definition, method or not
                seen.add(name)
                if name.startswith("__") and name.endswith("__"):
                    continue
                if _is_method(value):
                    names.append(name)

        self._cache[prototype] = tuple(names)
        return names

    def get_method(self, prototype: type, name: str) -> Any:
        """Raw class-level definition of `name` (function, staticmethod or classmethod)."""
        for klass in prototype.__mro__:
            if name in vars(klass):
                return vars(klass)[name]
        raise AttributeError(name)

    def scan_from_prototype(
        self,
        instance: Any,
        prototype: Optional[type],
        callback: Callable[[str], Optional[R]],
    ) -> list[R]:
        """Call `callback(name)` for every method name; collect the non-None results."""
        results: list[R] = []
        for name in self.get_all_method_names(prototype):
            result = callback(name)
            if result is not None:
                results.append(result)
        return results
