"""Construction and lookup of the station sources configured for the lake."""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Type

from models.config import StationsDocument, load_station_document
from models.errors import UnknownOverrideTarget, UnknownStationType
from models.records import DataType, StationConfig
from services.stations import AnnualStation, SeriesStation, StationSource
from services.transport import StationTransport, build_default_transport
from settings import get_settings

logger = logging.getLogger(__name__)

STATION_TYPES: Dict[Optional[str], Type[StationSource]] = {
    None: SeriesStation,
    "Data": SeriesStation,
    "Sotl": AnnualStation,
}


def resolve_data_types(config: StationConfig) -> Tuple[DataType, ...]:
    """Apply a station's overrides to its group's data types."""
    data_types = list(config.data_types)
    for override in config.overrides:
        index = next(
            (i for i, data_type in enumerate(data_types) if data_type.name == override.name),
            None,
        )
        if index is None:
            raise UnknownOverrideTarget(config.name, override.name)
        data_types[index] = override.apply(data_types[index])
    return tuple(data_types)


class StationRegistry:
    """Immutable, ordered collection of the configured station sources."""

    def __init__(self, stations: Iterable[StationSource]) -> None:
        self._stations: Tuple[StationSource, ...] = tuple(stations)
        self._by_name: Dict[str, StationSource] = {
            station.name: station for station in self._stations
        }

    @classmethod
    def from_document(
        cls,
        document: StationsDocument,
        transport: StationTransport,
        cache_ttl: float = 60 * 60,
        negative_cache_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "StationRegistry":
        stations: List[StationSource] = []
        for group_name, group in document.groups().items():
            try:
                station_cls = STATION_TYPES[group.station_type]
            except KeyError:
                raise UnknownStationType(str(group.station_type)) from None

            for config, inactive in group.station_configs():
                if inactive:
                    logger.debug(
                        "Skipping inactive station %s",
                        config.name,
                        extra={"station": config.name},
                    )
                    continue
                resolved = StationConfig(
                    name=config.name,
                    url=config.url,
                    coords=config.coords,
                    data_types=resolve_data_types(config),
                    id=config.id,
                )
                stations.append(
                    station_cls(
                        resolved,
                        transport,
                        cache_ttl=cache_ttl,
                        negative_cache_ttl=negative_cache_ttl,
                        clock=clock,
                    )
                )
            logger.debug("Loaded station group %s", group_name)

        logger.info("Built station registry with %d stations", len(stations))
        return cls(stations)

    def __iter__(self) -> Iterator[StationSource]:
        return iter(self._stations)

    def __len__(self) -> int:
        return len(self._stations)

    def get(self, name: str) -> StationSource:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"Station {name!r} not found.") from None

    def stations_with_data_type(self, data_type_name: str) -> List[StationSource]:
        return [station for station in self._stations if station.has_data_type(data_type_name)]

    def stations_with_all_data_types(self, data_type_names: Iterable[str]) -> List[StationSource]:
        names = list(data_type_names)
        return [
            station
            for station in self._stations
            if all(station.has_data_type(name) for name in names)
        ]


@lru_cache
def build_default_registry(config_path: Optional[str] = None) -> StationRegistry:
    """Factory that loads the configured stations document and wires real HTTP."""
    settings = get_settings()
    document = load_station_document(config_path or settings.stations_config_path)
    return StationRegistry.from_document(
        document,
        build_default_transport(),
        cache_ttl=settings.cache_ttl_seconds,
        negative_cache_ttl=settings.negative_cache_ttl_seconds,
    )
