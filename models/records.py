"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

TIMESTAMP_FIELD = "Timestamp"

# One normalized record: canonical data-type names (plus ``Timestamp``) to values.
NormalizedDataPoint = Dict[str, Any]

Matrix = List[List[float]]


@dataclass(frozen=True, slots=True)
class DataType:
    """How a raw station field maps onto a canonical quantity and unit."""

    name: str
    source_key: str
    name_units: str
    source_units: str


@dataclass(frozen=True, slots=True)
class DataTypeOverride:
    """Per-station replacement for the group's data type of the same name.

    Fields left as ``None`` keep the group's value.
    """

    name: str
    source_key: Optional[str] = None
    name_units: Optional[str] = None
    source_units: Optional[str] = None

    def apply(self, base: DataType) -> DataType:
        return replace(
            base,
            source_key=self.source_key if self.source_key is not None else base.source_key,
            name_units=self.name_units if self.name_units is not None else base.name_units,
            source_units=(
                self.source_units if self.source_units is not None else base.source_units
            ),
        )


@dataclass(frozen=True, slots=True)
class StationConfig:
    """Construction parameters for one station source."""

    name: str
    url: str
    coords: Tuple[float, float]
    data_types: Tuple[DataType, ...]
    id: Optional[str] = None
    overrides: Tuple[DataTypeOverride, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class MatrixPair:
    """The ``u`` and ``v`` velocity grids of one flow-field snapshot."""

    u: Matrix
    v: Matrix

    @property
    def shape(self) -> Tuple[int, int]:
        rows = len(self.u)
        return rows, (len(self.u[0]) if rows else 0)


class DownloadStatus(str, Enum):
    """Download lifecycle of a prefetched artifact."""

    pending = "pending"
    ready = "ready"
    failed = "failed"


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """A listed object-storage entry that can be downloaded."""

    id: str
    time: datetime


@dataclass(frozen=True, slots=True)
class Artifact:
    """A flow artifact and its download state.

    ``matrix`` is only set when ``status`` is ``ready``.
    """

    id: str
    time: datetime
    status: DownloadStatus = DownloadStatus.pending
    matrix: Optional[MatrixPair] = None

    @classmethod
    def from_ref(cls, ref: ArtifactRef) -> "Artifact":
        return cls(id=ref.id, time=ref.time)
