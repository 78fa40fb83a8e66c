from __future__ import annotations

from typing import Iterable, List


class MetricTesterError(Exception):
    """Base class for every domain error raised by metrictester."""


class InvalidInputType(MetricTesterError, TypeError):
    """An object of the wrong kind was passed where a prepared input was expected."""


class InvalidMetricsInput(InvalidInputType):
    pass


class InvalidNullsInput(InvalidInputType):
    pass


class InfeasibleParameters(MetricTesterError, ValueError):
    """Quadrat placement parameters cannot be satisfied."""


class PlacementRetriesExhausted(InfeasibleParameters):
    def __init__(self, quadrat: int, attempts: int):
        self.quadrat = int(quadrat)
        self.attempts = int(attempts)
        super().__init__(
            f"Could not place quadrat {self.quadrat} without overlap after {self.attempts} attempts"
        )


class UnknownRegistryName(MetricTesterError, KeyError):
    kind = "entry"

    def __init__(self, name: str):
        self.name = str(name)
        super().__init__(self.name)

    def __str__(self) -> str:
        return f"Unknown {self.kind} name: {self.name!r}"


class InvalidMetricName(UnknownRegistryName):
    kind = "metric"


class InvalidNullName(UnknownRegistryName):
    kind = "null model"


class UnmatchedGroupingKey(MetricTesterError, KeyError):
    """Observed rows could not be aligned one-to-one with summary rows."""

    def __init__(self, column: str, keys: Iterable[object], reason: str = "no summary row"):
        self.column = str(column)
        self.keys: List[object] = list(keys)
        self.reason = reason
        super().__init__(self.column)

    def __str__(self) -> str:
        shown = ", ".join(repr(k) for k in self.keys[:10])
        more = "" if len(self.keys) <= 10 else f" (+{len(self.keys) - 10} more)"
        return f"{self.reason} for {self.column}={shown}{more}"
