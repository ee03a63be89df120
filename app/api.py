"""HTTP route definitions for the service."""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    ActiveIndexIn,
    ArtifactOut,
    ConditionsOut,
    DataTypeOut,
    FlowOut,
    MatrixPairOut,
    SelectionIn,
    SelectionOut,
    SeriesOut,
    StationOut,
    StationReadingOut,
    SummaryOut,
)
from models.errors import NetworkFailure, StationDataError
from models.records import DownloadStatus, Matrix
from services.conditions import ConditionsService, SelectionState, build_default_conditions
from services.prefetcher import FlowSnapshot, WindowedPrefetcher, build_default_prefetcher
from services.registry import StationRegistry
from services.stations import StationSource

router = APIRouter()

DEFAULT_RANGE_DAYS = 7


def get_conditions() -> ConditionsService:
    return build_default_conditions()


def get_registry(conditions: ConditionsService = Depends(get_conditions)) -> StationRegistry:
    return conditions.registry


def get_prefetcher() -> WindowedPrefetcher:
    return build_default_prefetcher()


def _date_range(start: Optional[date], end: Optional[date]) -> tuple[date, date]:
    end_date = end or date.today()
    start_date = start or end_date - timedelta(days=DEFAULT_RANGE_DAYS)
    if start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start must not be after end.",
        )
    return start_date, end_date


def _get_station(registry: StationRegistry, name: str) -> StationSource:
    try:
        return registry.get(name)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Station {name!r} not found.",
        ) from exc


def _station_error(exc: StationDataError) -> HTTPException:
    if isinstance(exc, NetworkFailure):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


def _station_out(station: StationSource) -> StationOut:
    return StationOut(
        name=station.name,
        station_type=station.station_type,
        coords=station.coords,
        data_types=[
            DataTypeOut(
                name=data_type.name,
                source_key=data_type.source_key,
                name_units=data_type.name_units,
                source_units=data_type.source_units,
            )
            for data_type in station.data_types
        ],
    )


def _flow_out(snapshot: FlowSnapshot) -> FlowOut:
    start, stop = snapshot.window
    return FlowOut(
        version=snapshot.version,
        active_index=snapshot.active_index,
        window_start=start,
        window_stop=stop,
        artifacts=[
            ArtifactOut(index=index, id=artifact.id, time=artifact.time, status=artifact.status)
            for index, artifact in enumerate(snapshot.artifacts)
        ],
    )


def _selection_out(state: SelectionState) -> SelectionOut:
    return SelectionOut(
        status=state.status,
        station=state.station,
        start_date=state.start_date,
        end_date=state.end_date,
        points=list(state.series),
        detail=state.detail,
    )


def _jsonable_matrix(matrix: Matrix) -> List[List[Optional[float]]]:
    return [[None if math.isnan(cell) else cell for cell in row] for row in matrix]


@router.get(
    "/stations",
    response_model=List[StationOut],
    summary="List stations, optionally only those reporting every given data type.",
)
def list_stations(
    data_type: Optional[List[str]] = Query(default=None),
    registry: StationRegistry = Depends(get_registry),
) -> List[StationOut]:
    stations = registry.stations_with_all_data_types(data_type) if data_type else list(registry)
    return [_station_out(station) for station in stations]


@router.get(
    "/stations/{name}/series",
    response_model=SeriesOut,
    summary="Normalized series of one station over a date range.",
)
def get_station_series(
    name: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    registry: StationRegistry = Depends(get_registry),
) -> SeriesOut:
    station = _get_station(registry, name)
    start_date, end_date = _date_range(start, end)
    try:
        points = station.get_normalized_series(start_date, end_date)
    except StationDataError as exc:
        raise _station_error(exc) from exc
    return SeriesOut(station=station.name, start_date=start_date, end_date=end_date, points=points)


@router.get(
    "/stations/{name}/latest",
    response_model=SeriesOut,
    summary="Most recent normalized data point of one station.",
)
def get_station_latest(
    name: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    registry: StationRegistry = Depends(get_registry),
) -> SeriesOut:
    station = _get_station(registry, name)
    start_date, end_date = _date_range(start, end)
    try:
        point = station.get_most_recent_data_point(start_date, end_date)
    except StationDataError as exc:
        raise _station_error(exc) from exc
    return SeriesOut(station=station.name, start_date=start_date, end_date=end_date, points=[point])


@router.get(
    "/conditions/{data_type}",
    response_model=ConditionsOut,
    summary="Latest value of a data type at every station that reports it.",
)
def get_conditions_snapshot(
    data_type: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    conditions: ConditionsService = Depends(get_conditions),
) -> ConditionsOut:
    start_date, end_date = _date_range(start, end)
    snapshot = conditions.latest_conditions(data_type, start_date, end_date)
    summary = snapshot.summary
    return ConditionsOut(
        data_type=snapshot.data_type,
        start_date=snapshot.start_date,
        end_date=snapshot.end_date,
        readings=[
            StationReadingOut(
                station=reading.station,
                coords=reading.coords,
                status=reading.status,
                value=reading.value,
                timestamp=reading.timestamp,
                detail=reading.detail,
            )
            for reading in snapshot.readings
        ],
        summary=SummaryOut(
            count=summary.count,
            min_value=summary.min_value,
            max_value=summary.max_value,
            mean_value=summary.mean_value,
        ),
    )


@router.put(
    "/selection",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SelectionOut,
    summary="Select the station whose series is loaded in the background.",
)
def put_selection(
    payload: SelectionIn,
    conditions: ConditionsService = Depends(get_conditions),
) -> SelectionOut:
    if payload.start_date > payload.end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date.",
        )
    _get_station(conditions.registry, payload.station)
    conditions.selection.select(payload.station, payload.start_date, payload.end_date)
    return _selection_out(conditions.selection.state())


@router.get(
    "/selection",
    response_model=SelectionOut,
    summary="Current state of the selected station's series.",
)
def get_selection(conditions: ConditionsService = Depends(get_conditions)) -> SelectionOut:
    return _selection_out(conditions.selection.state())


@router.get(
    "/flow",
    response_model=FlowOut,
    summary="Download state of every flow artifact and the prefetch window.",
)
def get_flow(prefetcher: WindowedPrefetcher = Depends(get_prefetcher)) -> FlowOut:
    return _flow_out(prefetcher.snapshot())


@router.put(
    "/flow/active",
    response_model=FlowOut,
    summary="Move the prefetch window to a new active artifact.",
)
def put_flow_active(
    payload: ActiveIndexIn,
    prefetcher: WindowedPrefetcher = Depends(get_prefetcher),
) -> FlowOut:
    return _flow_out(prefetcher.set_active_index(payload.index))


@router.get(
    "/flow/{index}",
    response_model=MatrixPairOut,
    summary="Flow matrices of one artifact once downloaded.",
)
def get_flow_matrix(
    index: int,
    prefetcher: WindowedPrefetcher = Depends(get_prefetcher),
) -> MatrixPairOut:
    try:
        artifact = prefetcher.get_artifact(index)
    except IndexError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    if artifact.status is DownloadStatus.pending:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Flow artifact {index} has not been downloaded yet.",
        )
    if artifact.status is DownloadStatus.failed or artifact.matrix is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Flow artifact {index} could not be downloaded.",
        )
    return MatrixPairOut(
        index=index,
        time=artifact.time,
        u=_jsonable_matrix(artifact.matrix.u),
        v=_jsonable_matrix(artifact.matrix.v),
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
