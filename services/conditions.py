"""Lake-wide station conditions and the active station selection."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from datetime import date, datetime
from functools import lru_cache
from threading import Lock
from typing import Dict, Optional, Tuple

from app.schemas import DataState
from models.errors import StationDataError
from models.records import TIMESTAMP_FIELD, NormalizedDataPoint
from services.aggregator import AggregationSummary, Aggregator
from services.cancellation import CancellationToken
from services.registry import StationRegistry, build_default_registry
from services.stations import StationSource
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StationReading:
    station: str
    coords: Tuple[float, float]
    status: DataState
    value: Optional[float] = None
    timestamp: Optional[datetime] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class ConditionsSnapshot:
    data_type: str
    start_date: date
    end_date: date
    readings: Tuple[StationReading, ...]
    summary: AggregationSummary


@dataclass(frozen=True)
class SelectionState:
    status: DataState
    station: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    series: Tuple[NormalizedDataPoint, ...] = ()
    detail: Optional[str] = None


class StationSelection:
    """The series of the currently selected station.

    Each ``select`` call supersedes the previous one. A superseded load still
    runs to completion, but its result is dropped instead of being applied.
    """

    def __init__(self, registry: StationRegistry, executor: ThreadPoolExecutor) -> None:
        self.registry = registry
        self._executor = executor
        self._lock = Lock()
        self._token = CancellationToken()
        self._state = SelectionState(status=DataState.unavailable, detail="No station selected.")

    def state(self) -> SelectionState:
        with self._lock:
            return self._state

    def select(self, station_name: str, start_date: date, end_date: date) -> Future[None]:
        station = self.registry.get(station_name)
        token = CancellationToken()
        with self._lock:
            self._token.cancel()
            self._token = token
            self._state = SelectionState(
                status=DataState.loading,
                station=station.name,
                start_date=start_date,
                end_date=end_date,
            )
        return self._executor.submit(self._load, station, start_date, end_date, token)

    def _load(
        self,
        station: StationSource,
        start_date: date,
        end_date: date,
        token: CancellationToken,
    ) -> None:
        loading = SelectionState(
            status=DataState.loading,
            station=station.name,
            start_date=start_date,
            end_date=end_date,
        )
        try:
            series = station.get_normalized_series(start_date, end_date)
        except (StationDataError, ValueError) as exc:
            logger.warning(
                "Selected station is unavailable",
                extra={"station": station.name, "reason": str(exc)},
            )
            result = replace(
                loading,
                status=DataState.unavailable,
                detail=f"Data at {station.name} is temporarily unavailable: {exc}",
            )
        except Exception:
            logger.exception("Loading the selected station failed", extra={"station": station.name})
            result = replace(
                loading,
                status=DataState.unavailable,
                detail=f"Data at {station.name} could not be loaded.",
            )
        else:
            result = replace(loading, status=DataState.ready, series=tuple(series))

        with self._lock:
            if token.cancelled:
                logger.debug(
                    "Discarding superseded selection",
                    extra={"station": station.name, "status": result.status.value},
                )
                return
            self._state = result


class ConditionsService:
    """Fetches the latest reading of every station concurrently."""

    def __init__(
        self,
        registry: StationRegistry,
        aggregator: Optional[Aggregator] = None,
        workers: int = 4,
    ) -> None:
        self.registry = registry
        self.aggregator = aggregator or Aggregator()
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="station-fetch")
        self.selection = StationSelection(registry, self.executor)

    def latest_conditions(
        self, data_type: str, start_date: date, end_date: date
    ) -> ConditionsSnapshot:
        """Report the newest ``data_type`` value at each station carrying it.

        A failing station is reported as unavailable and never fails the whole
        snapshot.
        """
        stations = self.registry.stations_with_data_type(data_type)
        futures: Dict[Future[NormalizedDataPoint], int] = {
            self.executor.submit(station.get_most_recent_data_point, start_date, end_date): index
            for index, station in enumerate(stations)
        }

        readings: Dict[int, StationReading] = {}
        for future in as_completed(futures):
            index = futures[future]
            readings[index] = self._reading(stations[index], future, data_type)

        ordered = tuple(readings[index] for index in range(len(stations)))
        summary = self.aggregator.aggregate(
            reading.value
            for reading in ordered
            if reading.status is DataState.ready and reading.value is not None
        )
        logger.info(
            "Collected lake conditions",
            extra={"data_type": data_type, "point_count": summary.count},
        )
        return ConditionsSnapshot(
            data_type=data_type,
            start_date=start_date,
            end_date=end_date,
            readings=ordered,
            summary=summary,
        )

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _reading(
        station: StationSource,
        future: Future[NormalizedDataPoint],
        data_type: str,
    ) -> StationReading:
        try:
            point = future.result()
        except (StationDataError, ValueError) as exc:
            logger.warning(
                "Failed to download valid data from station",
                extra={"station": station.name, "data_type": data_type, "reason": str(exc)},
            )
            return StationReading(
                station=station.name,
                coords=station.coords,
                status=DataState.unavailable,
                detail=f"{station.name} temporarily unavailable",
            )
        return StationReading(
            station=station.name,
            coords=station.coords,
            status=DataState.ready,
            value=point.get(data_type),
            timestamp=point.get(TIMESTAMP_FIELD),
        )


@lru_cache
def build_default_conditions(workers: Optional[int] = None) -> ConditionsService:
    """Factory that wires the conditions service to the default registry."""
    settings = get_settings()
    return ConditionsService(
        registry=build_default_registry(),
        aggregator=Aggregator(),
        workers=workers or settings.conditions_workers,
    )
