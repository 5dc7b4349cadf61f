"""Environment / global variable source consumed by the template resolver."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from workflow.variables import stringify


class EnvironmentSource(Protocol):
    """Read-only lookup of ``{{name}}`` variables plus the active endpoint."""

    endpoint: Optional[str]

    def lookup(self, name: str) -> Optional[str]:
        ...


@dataclass
class Environment:
    """An active environment layered over global variables.

    Environment variables shadow globals with the same name. ``endpoint``
    is what ``{{env}}`` / ``{{url}}`` render to.
    """

    name: str = "default"
    endpoint: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    globals: Dict[str, Any] = field(default_factory=dict)

    def lookup(self, name: str) -> Optional[str]:
        if name in self.variables:
            return stringify(self.variables[name])
        if name in self.globals:
            return stringify(self.globals[name])
        return None


EMPTY_ENVIRONMENT = Environment(name="none")
