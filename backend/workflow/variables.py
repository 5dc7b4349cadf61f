"""Run-scoped variable store.

One store exists per workflow run. It is seeded from the workflow's
persisted variables, mutated by extraction and script steps, and handed
down the step tree by reference. Loop iterations push a scope holding
the iterator binding; the scope is popped when the iteration ends.
"""

import json
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional


def stringify(value: Any) -> str:
    """Coerce a value to the string form stored in variable maps."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


class VariableStore:
    """Name → string map with stacked iteration-local scopes.

    Reads check the innermost scope first. A write to a name bound by an
    enclosing iteration scope updates that binding; any other write goes
    to the shared run-level map, so it stays visible after the loop.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._values: dict[str, str] = {
            k: stringify(v) for k, v in (initial or {}).items()
        }
        self._scopes: list[dict[str, str]] = []

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return self._values.get(name, default)

    def __contains__(self, name: str) -> bool:
        return any(name in scope for scope in self._scopes) or name in self._values

    def __getitem__(self, name: str) -> str:
        if name not in self:
            raise KeyError(name)
        return self.get(name)

    def _owner(self, name: str) -> dict[str, str]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope
        return self._values

    def set(self, name: str, value: Any) -> None:
        self._owner(name)[name] = stringify(value)

    def update(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self.set(name, value)

    def delete(self, name: str) -> None:
        self._owner(name).pop(name, None)

    def snapshot(self) -> dict[str, str]:
        """Flattened view of everything currently visible."""
        merged = dict(self._values)
        for scope in self._scopes:
            merged.update(scope)
        return merged

    def persistent(self) -> dict[str, str]:
        """Run-level values only, without iteration bindings."""
        return dict(self._values)

    @property
    def depth(self) -> int:
        return len(self._scopes)

    @contextmanager
    def iteration_scope(self, bindings: Mapping[str, Any]) -> Iterator["VariableStore"]:
        self._scopes.append({k: stringify(v) for k, v in bindings.items()})
        try:
            yield self
        finally:
            self._scopes.pop()
