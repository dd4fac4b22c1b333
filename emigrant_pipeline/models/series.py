from __future__ import annotations

from dataclasses import dataclass

"""Time series value objects handed between the store, the forecast engine
and the rendering layer."""

__all__ = [
    "SeriesPoint",
    "ForecastPoint",
]


@dataclass(frozen=True)
class SeriesPoint:
    """One observed (year, value) pair of the series being modelled."""
    year: int
    value: float

    def as_dict(self) -> dict[str, float | int]:
        return {"year": self.year, "value": self.value}


@dataclass(frozen=True)
class ForecastPoint:
    """One predicted (year, value) pair; years follow the last trained year without gaps."""
    year: int
    value: float
    normalized_value: float | None = None

    def as_dict(self) -> dict[str, float | int]:
        return {"year": self.year, "value": self.value}
