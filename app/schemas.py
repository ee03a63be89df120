"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from models.records import DownloadStatus


class DataState(str, Enum):
    """Availability of station data as reported to callers."""

    loading = "loading"
    unavailable = "unavailable"
    ready = "ready"


class DataTypeOut(BaseModel):
    name: str
    source_key: str
    name_units: str
    source_units: str


class StationOut(BaseModel):
    """A configured station and the quantities it reports."""

    name: str
    station_type: str
    coords: Tuple[float, float]
    data_types: List[DataTypeOut] = Field(default_factory=list)


class SeriesOut(BaseModel):
    """A normalized station series, oldest point first."""

    station: str
    start_date: date
    end_date: date
    points: List[Dict[str, float | datetime]] = Field(default_factory=list)


class StationReadingOut(BaseModel):
    station: str
    coords: Tuple[float, float]
    status: DataState
    value: Optional[float] = None
    timestamp: Optional[datetime] = None
    detail: Optional[str] = None


class SummaryOut(BaseModel):
    count: int = Field(..., ge=0)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    mean_value: Optional[float] = None


class ConditionsOut(BaseModel):
    """Latest value of one data type at every station that reports it."""

    data_type: str
    start_date: date
    end_date: date
    readings: List[StationReadingOut] = Field(default_factory=list)
    summary: SummaryOut


class ArtifactOut(BaseModel):
    index: int = Field(..., ge=0)
    id: str
    time: datetime
    status: DownloadStatus


class FlowOut(BaseModel):
    version: int
    active_index: int
    window_start: int
    window_stop: int
    artifacts: List[ArtifactOut] = Field(default_factory=list)


class ActiveIndexIn(BaseModel):
    index: int = Field(..., ge=0)


class MatrixPairOut(BaseModel):
    index: int
    time: datetime
    # Cells outside the lake are null.
    u: List[List[Optional[float]]]
    v: List[List[Optional[float]]]


class SelectionIn(BaseModel):
    station: str
    start_date: date
    end_date: date


class SelectionOut(BaseModel):
    status: DataState
    station: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    points: List[Dict[str, float | datetime]] = Field(default_factory=list)
    detail: Optional[str] = None
