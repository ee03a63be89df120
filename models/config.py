"""Pydantic schemas for the station configuration document."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, RootModel, ValidationError, field_validator

from models.errors import ConfigurationError
from models.records import DataType, DataTypeOverride, StationConfig


class DataTypeSchema(BaseModel):
    """A ``DATA_TYPES`` entry of a station group."""

    model_config = ConfigDict(frozen=True)

    name: str
    source_key: str = Field(validation_alias=AliasChoices("key", "source_key", "sourceKey"))
    name_units: str = Field(validation_alias=AliasChoices("name_units", "nameUnits"))
    source_units: str = Field(
        validation_alias=AliasChoices("key_units", "source_units", "sourceUnits")
    )

    def to_record(self) -> DataType:
        return DataType(
            name=self.name,
            source_key=self.source_key,
            name_units=self.name_units,
            source_units=self.source_units,
        )


class DataTypeOverrideSchema(BaseModel):
    """A ``DATA_TYPE_OVERRIDES`` entry; omitted fields keep the group value."""

    model_config = ConfigDict(frozen=True)

    name: str
    source_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("key", "source_key", "sourceKey")
    )
    name_units: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("name_units", "nameUnits")
    )
    source_units: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("key_units", "source_units", "sourceUnits"),
    )

    def to_record(self) -> DataTypeOverride:
        return DataTypeOverride(
            name=self.name,
            source_key=self.source_key,
            name_units=self.name_units,
            source_units=self.source_units,
        )


class StationSchema(BaseModel):
    name: str
    id: Optional[str] = None
    coords: Tuple[float, float]
    inactive: bool = False
    overrides: List[DataTypeOverrideSchema] = Field(
        default_factory=list, validation_alias="DATA_TYPE_OVERRIDES"
    )

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        # Station ids are numeric in some groups.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class StationGroupSchema(BaseModel):
    url: str = Field(validation_alias="URL")
    data_types: List[DataTypeSchema] = Field(validation_alias="DATA_TYPES")
    stations: List[StationSchema] = Field(validation_alias="STATIONS")
    station_type: Optional[str] = Field(default=None, validation_alias="STATION_TYPE")

    def station_configs(self) -> List[Tuple[StationConfig, bool]]:
        """Return ``(config, inactive)`` pairs for every station in the group."""
        data_types = tuple(entry.to_record() for entry in self.data_types)
        return [
            (
                StationConfig(
                    name=station.name,
                    url=self.url,
                    coords=station.coords,
                    data_types=data_types,
                    id=station.id,
                    overrides=tuple(item.to_record() for item in station.overrides),
                ),
                station.inactive,
            )
            for station in self.stations
        ]


class StationsDocument(RootModel[Dict[str, StationGroupSchema]]):
    """Top-level configuration: station groups keyed by group name."""

    def groups(self) -> Dict[str, StationGroupSchema]:
        return self.root


def parse_station_document(payload: Mapping[str, Any]) -> StationsDocument:
    try:
        return StationsDocument.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid station configuration: {exc}") from exc


def load_station_document(path: str | Path) -> StationsDocument:
    """Read and validate the station configuration JSON at ``path``."""
    config_path = Path(path)
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(
            f"Could not read station configuration {str(config_path)!r}: {exc}"
        ) from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"Station configuration {str(config_path)!r} is not valid JSON: {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise ConfigurationError("Station configuration must be a JSON object of groups.")
    return parse_station_document(payload)
