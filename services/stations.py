"""Station data sources that turn raw station records into normalized series."""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple

from models.errors import InsufficientData, NetworkFailure
from models.records import TIMESTAMP_FIELD, DataType, NormalizedDataPoint, StationConfig
from services.cache import TTLCache
from services.coalescer import RequestCoalescer
from services.transport import StationTransport
from services.units import UnitConverter

logger = logging.getLogger(__name__)

# Series with this many points or fewer are rejected as insufficient.
MAX_INSUFFICIENT_POINTS = 2
DEFAULT_CACHE_TTL = 60 * 60


def format_ymd(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def parse_reading(raw: Any) -> float:
    """Parse a raw station reading, treating placeholders such as ``"None"`` as 0."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return value


class StationSource(ABC):
    """A remote station whose records are fetched once per cache lifetime.

    Subclasses decide how a date range maps onto remote requests and how each
    record carries its timestamp. Everything else, including coalescing,
    unit conversion, ordering and validation, lives here.
    """

    station_type: ClassVar[str]

    def __init__(
        self,
        config: StationConfig,
        transport: StationTransport,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        negative_cache_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = config.url
        self.name = config.name
        self.id = config.id
        self.coords: Tuple[float, float] = config.coords
        self.data_types: Tuple[DataType, ...] = config.data_types
        self.cache = TTLCache(cache_ttl, clock=clock)
        self._transport = transport
        # Separate locks for downloads and normalization; normalization calls into
        # downloads, never the reverse.
        self._downloads = RequestCoalescer(self.cache, self.name, negative_cache_ttl)
        self._normalized = RequestCoalescer(self.cache, self.name, negative_cache_ttl)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, url={self.url!r})"

    def has_data_type(self, data_type_name: str) -> bool:
        return self.get_data_type(data_type_name) is not None

    def get_data_type(self, data_type_name: str) -> Optional[DataType]:
        return next((dt for dt in self.data_types if dt.name == data_type_name), None)

    def fetch(self, params: Mapping[str, Any], key: str) -> List[Any]:
        """Fetch raw records for ``params``, at most once per live cache ``key``."""
        return self._downloads.run(key, lambda: self._download(params))

    @abstractmethod
    def get_raw_series(self, start_date: date, end_date: date) -> List[Any]:
        """Return the raw station records covering ``[start_date, end_date]``."""

    @abstractmethod
    def record_timestamp(self, record: Mapping[str, Any]) -> datetime:
        """Return the UTC timestamp of a raw record; raise ``ValueError`` if absent."""

    def get_normalized_series(
        self, start_date: date, end_date: date
    ) -> List[NormalizedDataPoint]:
        """Return the unit-converted series for the range, sorted by timestamp.

        Raises ``InsufficientData`` when the range holds two or fewer records.
        That outcome is cached, so repeating the call does not refetch until the
        negative cache entry expires.
        """
        if start_date > end_date:
            raise ValueError("start_date must not be after end_date.")

        key = f"normalized-{format_ymd(start_date)},{format_ymd(end_date)}"
        series = self._normalized.run(key, lambda: self._build_series(start_date, end_date, key))
        if series is None:
            raise InsufficientData(self.name)
        return [dict(point) for point in series]

    def get_most_recent_data_point(
        self, start_date: date, end_date: date
    ) -> NormalizedDataPoint:
        return self.get_normalized_series(start_date, end_date)[-1]

    def normalize_record(self, record: Mapping[str, Any]) -> NormalizedDataPoint:
        point: NormalizedDataPoint = {}
        for data_type in self.data_types:
            value = parse_reading(record.get(data_type.source_key))
            point[data_type.name] = UnitConverter.convert(
                value, data_type.source_units, data_type.name_units
            )
        point[TIMESTAMP_FIELD] = self.record_timestamp(record)
        return point

    def _download(self, params: Mapping[str, Any]) -> List[Any]:
        payload = self._transport.get_json(self.url, dict(params))
        if not isinstance(payload, list):
            raise NetworkFailure(self.url, "expected a JSON array of records")
        return payload

    def _build_series(
        self, start_date: date, end_date: date, key: str
    ) -> Optional[List[NormalizedDataPoint]]:
        series: List[NormalizedDataPoint] = []
        for position, record in enumerate(self.get_raw_series(start_date, end_date)):
            if not isinstance(record, Mapping):
                self._skip_record(position, "record is not an object")
                continue
            try:
                series.append(self.normalize_record(record))
            except (KeyError, TypeError, ValueError, OverflowError):
                self._skip_record(position, "invalid timestamp")

        series.sort(key=lambda point: point[TIMESTAMP_FIELD])

        if len(series) <= MAX_INSUFFICIENT_POINTS:
            logger.warning(
                "Station returned too few data points",
                extra={"station": self.name, "cache_key": key, "point_count": len(series)},
            )
            return None
        return series

    def _skip_record(self, position: int, reason: str) -> None:
        logger.warning(
            "Skipping record %s",
            position,
            extra={"station": self.name, "reason": reason},
        )


class SeriesStation(StationSource):
    """Station serving one request per date range, timestamped by ``TmStamp``."""

    station_type = "series"
    TIME_KEY = "TmStamp"

    def get_raw_series(self, start_date: date, end_date: date) -> List[Any]:
        start, end = format_ymd(start_date), format_ymd(end_date)
        params: Dict[str, Any] = {"id": self.id, "rptdate": start, "rptend": end}
        if self.id is None:
            del params["id"]
        return self.fetch(params, key=f"download-{start},{end}")

    def record_timestamp(self, record: Mapping[str, Any]) -> datetime:
        # "YYYY-MM-DD HH:MM:SS" in UTC, without an offset.
        candidate = str(record[self.TIME_KEY]).strip().replace(" ", "T", 1)
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        parsed = datetime.fromisoformat(candidate)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


class AnnualStation(StationSource):
    """Station serving one annual summary record per calendar year.

    Each year is fetched and cached on its own, so overlapping ranges share
    downloads.
    """

    station_type = "annual"
    YEAR_KEY = "Year"

    def get_raw_series(self, start_date: date, end_date: date) -> List[Any]:
        records: List[Any] = []
        for year in range(start_date.year, end_date.year + 1):
            yearly = self.fetch({"id": year}, key=f"download-{year}")
            # The endpoint answers with a one-element array holding the year's summary.
            if yearly:
                records.append(yearly[0])
        return records

    def record_timestamp(self, record: Mapping[str, Any]) -> datetime:
        year = int(float(str(record[self.YEAR_KEY]).strip()))
        return datetime(year, 1, 1, tzinfo=timezone.utc)
