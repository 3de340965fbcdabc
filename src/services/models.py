"""Values produced and consumed during a scrape."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class DimensionSet:
    """One concrete combination of ``(dimension name, value)`` pairs to query.

    ``discovered`` is False for the set built straight from
    ``aws_dimensions_select`` and True for sets found through ``ListMetrics``.
    """

    pairs: tuple[tuple[str, str], ...]
    discovered: bool = False

    @property
    def values(self) -> tuple[str, ...]:
        return tuple(value for _, value in self.pairs)

    @property
    def key(self) -> tuple[str, ...]:
        """Dedup key: the values in declared dimension order."""
        return self.values

    def values_for(self, dimensions: tuple[str, ...]) -> tuple[str, ...]:
        """One label value per name in ``dimensions``.

        Folded values of one dimension are joined with ``,``; a dimension
        missing from the set gets an empty value.
        """
        by_name: dict[str, list[str]] = {}
        for name, value in self.pairs:
            by_name.setdefault(name, []).append(value)
        return tuple(",".join(by_name.get(d, ())) for d in dimensions)


@dataclass(frozen=True)
class Datapoint:
    """A single ``GetMetricStatistics`` datapoint."""

    timestamp: datetime
    sum: float | None = None
    average: float | None = None
    maximum: float | None = None
    minimum: float | None = None
    sample_count: float | None = None
    unit: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> Datapoint:
        return cls(
            timestamp=data["Timestamp"],
            sum=data.get("Sum"),
            average=data.get("Average"),
            maximum=data.get("Maximum"),
            minimum=data.get("Minimum"),
            sample_count=data.get("SampleCount"),
            unit=data.get("Unit"),
        )

    def statistics(self) -> list[tuple[str, float]]:
        """Return the non-null ``(statistic, value)`` pairs in emission order."""
        fields = (
            ("Sum", self.sum),
            ("Average", self.average),
            ("Maximum", self.maximum),
            ("Minimum", self.minimum),
            ("SampleCount", self.sample_count),
        )
        return [(name, float(value)) for name, value in fields if value is not None]


@dataclass(frozen=True)
class Sample:
    """One labeled value, ready for exposition."""

    name: str
    documentation: str
    label_names: tuple[str, ...]
    label_values: tuple[str, ...]
    value: float


class ScrapeStats:
    """Counters of one scrape session, shared by all of its threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._erroneous_requests = 0
        self._duration_seconds = 0.0

    def record_error(self) -> None:
        with self._lock:
            self._erroneous_requests += 1

    def record_duration(self, seconds: float) -> None:
        with self._lock:
            self._duration_seconds = seconds

    @property
    def erroneous_requests(self) -> int:
        with self._lock:
            return self._erroneous_requests

    @property
    def duration_seconds(self) -> float:
        with self._lock:
            return self._duration_seconds
