"""Exception hierarchy for station data and configuration failures."""

from __future__ import annotations


class LakeFeedError(Exception):
    """Base class for every error raised by the feed."""


class StationDataError(LakeFeedError):
    """A station could not produce usable data for a request."""


class NetworkFailure(StationDataError):
    """The remote endpoint could not be reached or returned an unusable payload."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Request to {url!r} failed: {reason}")
        self.url = url
        self.reason = reason


class InsufficientData(StationDataError):
    """A normalized series had too few points to be meaningful."""

    def __init__(self, station: str, point_count: int | None = None) -> None:
        if point_count is None:
            detail = "cached result"
        else:
            detail = f"{point_count} data points"
        super().__init__(f"Station {station!r} doesn't contain enough data points ({detail})")
        self.station = station
        self.point_count = point_count


class UnsupportedConversion(StationDataError):

    def __init__(self, from_unit: str, to_unit: str) -> None:
        super().__init__(f"Conversion from {from_unit!r} to {to_unit!r} is not implemented")
        self.from_unit = from_unit
        self.to_unit = to_unit


class ConfigurationError(LakeFeedError):
    """The station configuration document is invalid."""


class UnknownOverrideTarget(ConfigurationError):

    def __init__(self, station: str, data_type: str) -> None:
        super().__init__(
            f"Station {station!r} overrides data type {data_type!r}, "
            "which its group does not define"
        )
        self.station = station
        self.data_type = data_type


class UnknownStationType(ConfigurationError):

    def __init__(self, station_type: str) -> None:
        super().__init__(f"Unknown station type {station_type!r}")
        self.station_type = station_type
