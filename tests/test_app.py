import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Mapping, Optional

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from models.errors import NetworkFailure
from models.records import DataType, StationConfig
from services.conditions import ConditionsService, build_default_conditions
from services.prefetcher import WindowedPrefetcher, build_default_prefetcher
from services.registry import StationRegistry, build_default_registry
from services.stations import SeriesStation
from settings import get_settings
from storage.flow_store import FlowArtifactStore, build_default_flow_store
from storage.object_store import ObjectBucket, build_default_bucket

TEMP = DataType(name="Temp", source_key="T", name_units="f", source_units="c")
WIND = DataType(name="Wind", source_key="W", name_units="mph", source_units="m/s")
RANGE = {"start": "2024-01-01", "end": "2024-01-03"}


class StubTransport:
    def __init__(self, responder: Callable[[], Any]) -> None:
        self.responder = responder

    def get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self.responder()


def _three_days() -> Any:
    return [
        {"TmStamp": "2024-01-01 00:00:00", "T": 0, "W": 1},
        {"TmStamp": "2024-01-02 00:00:00", "T": 10, "W": 2},
        {"TmStamp": "2024-01-03 00:00:00", "T": 100, "W": 3},
    ]


def _two_days() -> Any:
    return _three_days()[:2]


def _offline() -> Any:
    raise NetworkFailure("https://stations.test/offline", "connection refused")


def _station(name: str, responder: Callable[[], Any], *data_types: DataType) -> SeriesStation:
    config = StationConfig(
        name=name,
        url=f"https://stations.test/{name}",
        coords=(39.1, -120.0),
        data_types=data_types or (TEMP,),
        id=name,
    )
    return SeriesStation(config, StubTransport(responder))


def _as_factory(instance: Any) -> Callable[..., Any]:
    def build(*_args: Any, **_kwargs: Any) -> Any:
        return instance

    build.cache_clear = instance.shutdown  # type: ignore[attr-defined]
    return build


@pytest.fixture
def conditions() -> Iterator[ConditionsService]:
    registry = StationRegistry(
        [
            _station("homewood", _three_days, TEMP, WIND),
            _station("glenbrook", _two_days),
            _station("offline", _offline),
        ]
    )
    service = ConditionsService(registry, workers=2)
    yield service
    service.shutdown()


@pytest.fixture
def prefetcher() -> Iterator[WindowedPrefetcher]:
    bucket = ObjectBucket(name="flow")
    store = FlowArtifactStore(bucket)
    for hour in range(3):
        store.upload(
            datetime(2024, 6, 1, hour, tzinfo=timezone.utc),
            [[float(hour), float("nan")]],
            [[1.0, 2.0]],
        )
    bucket.put_object("flow/20240601T030000Z.json", b"not json")
    prefetcher = WindowedPrefetcher(store, window_size=2)
    yield prefetcher
    prefetcher.shutdown()


@pytest.fixture
def api_client(conditions, prefetcher, monkeypatch) -> Iterator[TestClient]:
    conditions_factory = _as_factory(conditions)
    prefetcher_factory = _as_factory(prefetcher)
    monkeypatch.setattr("app.main.build_default_conditions", conditions_factory)
    monkeypatch.setattr("app.api.build_default_conditions", conditions_factory)
    monkeypatch.setattr("app.main.build_default_prefetcher", prefetcher_factory)
    monkeypatch.setattr("app.api.build_default_prefetcher", prefetcher_factory)

    app = create_app()
    with TestClient(app) as client:
        yield client


def test_lifespan_shuts_down_services_and_clears_caches(monkeypatch, tmp_path) -> None:
    config_path = tmp_path / "stations.json"
    config_path.write_text(
        json.dumps(
            {
                "Buoys": {
                    "URL": "https://stations.test/buoys",
                    "DATA_TYPES": [{"name": "Temp", "key": "T", "name_units": "f", "key_units": "c"}],
                    "STATIONS": [{"name": "Homewood", "id": 1, "coords": [39.0, -120.0]}],
                }
            }
        )
    )
    monkeypatch.setenv("STATIONS_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("FLOW_BUCKET_ROOT_PATH", str(tmp_path / "flow"))
    caches = (get_settings, build_default_registry, build_default_flow_store, build_default_bucket)
    for cache in caches:
        cache.cache_clear()

    try:
        with TestClient(create_app()) as client:
            conditions_during = build_default_conditions()
            prefetcher_during = build_default_prefetcher()
            assert conditions_during.executor._shutdown is False
            assert client.get("/stations").json()[0]["name"] == "Homewood"

        assert conditions_during.executor._shutdown is True
        assert prefetcher_during.executor._shutdown is True
        assert build_default_conditions.cache_info().currsize == 0
        assert build_default_prefetcher.cache_info().currsize == 0
    finally:
        for cache in caches:
            cache.cache_clear()


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").status_code == 200


def test_list_stations_filters_by_every_data_type(api_client: TestClient) -> None:
    everything = api_client.get("/stations")
    filtered = api_client.get("/stations", params=[("data_type", "Temp"), ("data_type", "Wind")])

    assert [station["name"] for station in everything.json()] == [
        "homewood",
        "glenbrook",
        "offline",
    ]
    body = filtered.json()
    assert [station["name"] for station in body] == ["homewood"]
    assert body[0]["station_type"] == "series"
    assert body[0]["data_types"][1] == {
        "name": "Wind",
        "source_key": "W",
        "name_units": "mph",
        "source_units": "m/s",
    }


def test_station_series_is_normalized(api_client: TestClient) -> None:
    response = api_client.get("/stations/homewood/series", params=RANGE)

    assert response.status_code == 200
    points = response.json()["points"]
    assert [point["Temp"] for point in points] == pytest.approx([32.0, 50.0, 212.0])
    assert points[0]["Timestamp"].startswith("2024-01-01T00:00:00")


def test_station_latest_point(api_client: TestClient) -> None:
    response = api_client.get("/stations/homewood/latest", params=RANGE)

    assert response.status_code == 200
    (point,) = response.json()["points"]
    assert point["Temp"] == pytest.approx(212.0)
    assert point["Wind"] == pytest.approx(3 * 2.2369)


@pytest.mark.parametrize(
    ("path", "params", "expected_status"),
    [
        ("/stations/nowhere/series", RANGE, 404),
        ("/stations/glenbrook/series", RANGE, 422),
        ("/stations/offline/latest", RANGE, 503),
        ("/stations/homewood/series", {"start": "2024-02-01", "end": "2024-01-01"}, 400),
    ],
)
def test_station_errors(
    api_client: TestClient, path: str, params: dict, expected_status: int
) -> None:
    response = api_client.get(path, params=params)

    assert response.status_code == expected_status
    assert response.json()["detail"]


def test_conditions_snapshot(api_client: TestClient) -> None:
    response = api_client.get("/conditions/Temp", params=RANGE)

    assert response.status_code == 200
    body = response.json()
    statuses = {reading["station"]: reading["status"] for reading in body["readings"]}
    assert statuses == {"homewood": "ready", "glenbrook": "unavailable", "offline": "unavailable"}
    assert body["summary"]["count"] == 1
    assert body["summary"]["max_value"] == pytest.approx(212.0)


def _poll_selection(client: TestClient, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    last_payload: dict | None = None
    while time.monotonic() < deadline:
        response = client.get("/selection")
        assert response.status_code == 200
        payload = response.json()
        last_payload = payload
        if payload["status"] != "loading":
            return payload
        time.sleep(0.05)
    pytest.fail(f"Selection did not finish loading: {last_payload}")


def test_select_station_and_poll(api_client: TestClient) -> None:
    assert api_client.get("/selection").json()["status"] == "unavailable"

    response = api_client.put(
        "/selection",
        json={"station": "homewood", "start_date": "2024-01-01", "end_date": "2024-01-03"},
    )

    assert response.status_code == 202
    assert response.json()["station"] == "homewood"
    result = _poll_selection(api_client)
    assert result["status"] == "ready"
    assert len(result["points"]) == 3


def test_select_unavailable_station(api_client: TestClient) -> None:
    api_client.put(
        "/selection",
        json={"station": "offline", "start_date": "2024-01-01", "end_date": "2024-01-03"},
    )

    result = _poll_selection(api_client)

    assert result["status"] == "unavailable"
    assert "offline" in result["detail"]


def test_select_unknown_station_returns_not_found(api_client: TestClient) -> None:
    response = api_client.put(
        "/selection",
        json={"station": "nowhere", "start_date": "2024-01-01", "end_date": "2024-01-03"},
    )

    assert response.status_code == 404


def test_flow_window_and_matrices(
    api_client: TestClient, prefetcher: WindowedPrefetcher
) -> None:
    assert prefetcher.wait_for_downloads(timeout=5)

    flow = api_client.get("/flow").json()
    assert (flow["window_start"], flow["window_stop"]) == (0, 2)
    assert [artifact["status"] for artifact in flow["artifacts"]] == [
        "ready",
        "ready",
        "pending",
        "pending",
    ]

    matrices = api_client.get("/flow/0").json()
    assert matrices["u"] == [[0.0, None]]
    assert matrices["v"] == [[1.0, 2.0]]
    assert api_client.get("/flow/2").status_code == 409
    assert api_client.get("/flow/9").status_code == 404

    moved = api_client.put("/flow/active", json={"index": 3})
    assert moved.json()["active_index"] == 3
    assert prefetcher.wait_for_downloads(timeout=5)

    assert api_client.get("/flow/2").json()["u"] == [[2.0, None]]
    assert api_client.get("/flow/3").status_code == 502
