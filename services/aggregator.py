"""Summary statistics over the latest readings of many stations."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

Reading = Union[float, Sequence[float]]


@dataclass(frozen=True)
class AggregationSummary:
    """Computed statistics for one data type across stations."""

    count: int = 0
    min_value: float | None = None
    max_value: float | None = None
    mean_value: float | None = None


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, readings: Iterable[Reading]) -> AggregationSummary:
        count = 0
        total = 0.0
        min_value: float | None = None
        max_value: float | None = None

        for reading in readings:
            value = self.reduce(reading)
            if value is None:
                continue
            count += 1
            total += value
            if min_value is None or value < min_value:
                min_value = value
            if max_value is None or value > max_value:
                max_value = value

        if not count:
            return AggregationSummary()
        return AggregationSummary(
            count=count, min_value=min_value, max_value=max_value, mean_value=total / count
        )

    @staticmethod
    def reduce(reading: Reading) -> float | None:
        """Collapse a reading to one number; profile readings use their mean."""
        if isinstance(reading, (int, float)):
            value = float(reading)
        else:
            values = [float(item) for item in reading]
            if not values:
                return None
            value = sum(values) / len(values)
        return None if math.isnan(value) else value
