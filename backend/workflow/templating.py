"""Template resolution for request fields and condition expressions.

Two placeholder syntaxes are recognised in a single left-to-right pass:

- ``{{identifier}}``: function library first, then environment/global
  variables: ``{{uuid}}``, ``{{now+1d}}``, ``{{randomInt(1,10)}}``,
  ``{{baseUrl}}``
- ``${identifier}``: chain variables only (values produced by earlier
  workflow steps): ``${token}``, also written ``${#TestCase#token}``

Unresolvable placeholders stay in the output verbatim and are reported
as ResolutionGap entries so the caller can surface them as warnings.
Inserted values are never re-scanned.
"""

import random
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional

import structlog
from dateutil.relativedelta import relativedelta

from integrations.environment import EMPTY_ENVIRONMENT, EnvironmentSource

logger = structlog.get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}|\$\{\s*(?:#TestCase#)?([^{}]*?)\s*\}")

ENVIRONMENT_NAMESPACE = "environment"
CHAIN_NAMESPACE = "chain"


@dataclass(frozen=True)
class ResolutionGap:
    """A placeholder no function or variable could satisfy."""

    placeholder: str
    name: str
    namespace: str

    def __str__(self) -> str:
        return f"Unresolved {self.namespace} placeholder {self.placeholder}"


@dataclass
class RenderResult:
    text: str
    gaps: list[ResolutionGap] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.gaps


@dataclass
class TemplateScope:
    """Values visible to one resolution.

    ``now`` pins the render instant; when omitted each render pass reads
    the clock once, so ``{{now}}`` and ``{{now+1d}}`` in the same text
    agree.
    """

    environment: EnvironmentSource = field(default_factory=lambda: EMPTY_ENVIRONMENT)
    chain_variables: Mapping[str, str] = field(default_factory=dict)
    now: Optional[datetime] = None


def isoformat(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ─── Function library ─────────────────────────────────────────

LOREM_WORDS = (
    "lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod "
    "tempor incididunt ut labore et dolore magna aliqua ut enim ad minim "
    "veniam quis nostrud exercitation ullamco laboris nisi ut aliquip ex ea "
    "commodo consequat"
).split()

FIRST_NAMES = (
    "James", "Mary", "John", "Patricia", "Robert", "Jennifer", "Michael",
    "Linda", "William", "Elizabeth", "David", "Barbara", "Richard", "Susan",
)

LAST_NAMES = (
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Miller", "Davis",
    "Garcia", "Wilson", "Taylor", "Anderson", "Thomas", "Moore", "Clark",
)

COUNTRIES = (
    "United States", "Canada", "United Kingdom", "Germany", "France",
    "Spain", "Italy", "Japan", "Australia", "Brazil", "India", "Mexico",
)

STATES = (
    "California", "Texas", "Florida", "New York", "Illinois", "Ohio",
    "Georgia", "Washington", "Arizona", "Colorado", "Oregon", "Nevada",
)

_DATE_MATH = re.compile(r"^now([+-])(\d+)([dmy])$")
_LOREM_COUNT = re.compile(r"^lorem\(\s*(\d+)\s*\)$")
_RANDOM_INT = re.compile(r"^randomInt\(\s*(-?\d+)\s*,\s*(-?\d+)\s*\)$")


class FunctionLibrary:
    """Dynamic ``{{...}}`` values. Every call produces a fresh value."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def call(
        self, identifier: str, now: datetime, environment: EnvironmentSource
    ) -> Optional[str]:
        """Return the function's value, or None if ``identifier`` is not a known function."""
        if identifier in ("uuid", "newguid"):
            return str(uuid.uuid4())
        if identifier == "now":
            return isoformat(now)
        if identifier == "epoch":
            return str(int(now.timestamp()))
        if identifier == "lorem":
            return self._lorem(1)
        if identifier == "name":
            return f"{self._rng.choice(FIRST_NAMES)} {self._rng.choice(LAST_NAMES)}"
        if identifier == "country":
            return self._rng.choice(COUNTRIES)
        if identifier == "state":
            return self._rng.choice(STATES)
        if identifier in ("env", "url"):
            return environment.endpoint or None

        match = _DATE_MATH.match(identifier)
        if match:
            sign, amount, unit = match.groups()
            amount = int(amount) * (1 if sign == "+" else -1)
            if unit == "d":
                delta = relativedelta(days=amount)
            elif unit == "m":
                delta = relativedelta(months=amount)
            else:
                delta = relativedelta(years=amount)
            return isoformat(now + delta)

        match = _LOREM_COUNT.match(identifier)
        if match:
            return self._lorem(int(match.group(1)))

        match = _RANDOM_INT.match(identifier)
        if match:
            low, high = int(match.group(1)), int(match.group(2))
            if low > high:
                return None
            return str(self._rng.randint(low, high))

        return None

    def _lorem(self, count: int) -> str:
        return " ".join(self._rng.choice(LOREM_WORDS) for _ in range(count))


# ─── Resolver ─────────────────────────────────────────────────

class TemplateResolver:
    """Render ``{{...}}`` and ``${...}`` placeholders in one pass."""

    def __init__(self, functions: Optional[FunctionLibrary] = None):
        self._functions = functions or FunctionLibrary()

    def render(self, text: str, scope: TemplateScope) -> RenderResult:
        if not text or ("{{" not in text and "${" not in text):
            return RenderResult(text=text)

        now = scope.now or datetime.now(timezone.utc)
        gaps: list[ResolutionGap] = []

        def replace(match: re.Match) -> str:
            if match.group(1) is not None:
                name = match.group(1)
                namespace = ENVIRONMENT_NAMESPACE
                value = None
                if name:
                    value = self._functions.call(name, now, scope.environment)
                    if value is None:
                        value = scope.environment.lookup(name)
            else:
                name = match.group(2)
                namespace = CHAIN_NAMESPACE
                value = scope.chain_variables.get(name) if name else None

            if value is None:
                gaps.append(ResolutionGap(match.group(0), name, namespace))
                return match.group(0)
            return value

        rendered = PLACEHOLDER_PATTERN.sub(replace, text)
        if gaps:
            logger.debug(
                "Unresolved placeholders left verbatim",
                placeholders=[gap.placeholder for gap in gaps],
            )
        return RenderResult(text=rendered, gaps=gaps)

    def resolve(self, text: str, scope: TemplateScope) -> str:
        return self.render(text, scope).text

    def render_mapping(self, mapping: Mapping[str, str], scope: TemplateScope) -> tuple[dict[str, str], list[ResolutionGap]]:
        """Resolve every value of a mapping (header maps); keys are left as-is."""
        resolved: dict[str, str] = {}
        gaps: list[ResolutionGap] = []
        for key, value in mapping.items():
            result = self.render(value, scope)
            resolved[key] = result.text
            gaps.extend(result.gaps)
        return resolved, gaps
