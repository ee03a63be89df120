import json
import math
from datetime import datetime, timezone
from pathlib import Path

import pytest

from storage.flow_store import FlowArtifactStore, decode_matrix_pair
from storage.object_store import ObjectBucket


def test_bucket_put_and_get(tmp_path: Path) -> None:
    bucket = ObjectBucket(name="test", root_path=tmp_path)
    bucket.put_object("flow/file.json", b"hello")

    assert (tmp_path / "flow" / "file.json").read_bytes() == b"hello"
    assert bucket.list_objects("flow/") == ["flow/file.json"]
    assert bucket.list_objects("other/") == []

    fresh_bucket = ObjectBucket(name="test", root_path=tmp_path)
    assert fresh_bucket.get_object("flow/file.json") == b"hello"


def test_bucket_missing_key() -> None:
    bucket = ObjectBucket(name="test")

    with pytest.raises(KeyError) as excinfo:
        bucket.get_object("missing.json")

    assert "missing.json" in str(excinfo.value)


def test_upload_list_and_download(tmp_path: Path) -> None:
    store = FlowArtifactStore(ObjectBucket(name="flow", root_path=tmp_path))
    later = datetime(2024, 6, 2, 12, tzinfo=timezone.utc)
    earlier = datetime(2024, 6, 1, 6, 30, tzinfo=timezone.utc)

    store.upload(later, [[1.0, 2.0]], [[3.0, 4.0]])
    ref = store.upload(earlier, [[0.5, math.nan]], [[0.25, math.nan]])

    assert ref.id == "flow/20240601T063000Z.json"
    refs = FlowArtifactStore(ObjectBucket(name="flow", root_path=tmp_path)).list_artifacts()
    assert [r.time for r in refs] == [earlier, later]

    pair = store.download(ref.id)
    assert pair.shape == (1, 2)
    assert pair.u[0][0] == 0.5
    assert math.isnan(pair.u[0][1])
    assert math.isnan(pair.v[0][1])


def test_nan_cells_are_stored_as_null() -> None:
    bucket = ObjectBucket(name="flow")
    store = FlowArtifactStore(bucket)

    ref = store.upload(datetime(2024, 1, 1, tzinfo=timezone.utc), [[math.nan]], [[1.0]])

    assert json.loads(bucket.get_object(ref.id)) == {"matrices": [[[None]], [[1.0]]]}


def test_unparseable_keys_are_ignored(caplog) -> None:
    bucket = ObjectBucket(name="flow")
    bucket.put_object("flow/readme.txt", b"")
    bucket.put_object("flow/latest.json", b"{}")
    bucket.put_object("flow/20240101T000000Z.json", b"{}")

    refs = FlowArtifactStore(bucket).list_artifacts()

    assert [ref.id for ref in refs] == ["flow/20240101T000000Z.json"]
    assert any(getattr(record, "artifact_id", None) == "flow/latest.json" for record in caplog.records)


@pytest.mark.parametrize(
    "payload",
    [
        {"matrices": [[[1.0]]]},
        {"matrices": [[[1.0, 2.0], [3.0]], [[1.0, 2.0], [3.0, 4.0]]]},
        {"matrices": [[[1.0, 2.0]], [[1.0]]]},
        {"matrices": [[], []]},
        [[[1.0]], [[1.0]]],
    ],
)
def test_malformed_artifacts_are_rejected(payload) -> None:
    with pytest.raises(ValueError):
        decode_matrix_pair(json.dumps(payload).encode("utf-8"))


def test_bucket_reads_files_written_elsewhere_once(tmp_path: Path) -> None:
    bucket = ObjectBucket(name="flow", root_path=tmp_path)
    (tmp_path / "flow").mkdir()
    (tmp_path / "flow" / "a.json").write_bytes(b"first")
    (tmp_path / "other.json").write_bytes(b"skip")

    assert bucket.list_objects("flow/") == ["flow/a.json"]
    assert bucket.get_object("flow/a.json") == b"first"

    (tmp_path / "flow" / "a.json").write_bytes(b"second")
    assert bucket.get_object("flow/a.json") == b"first"


def test_bucket_lists_prefix_inside_missing_directory(tmp_path: Path) -> None:
    bucket = ObjectBucket(name="flow", root_path=tmp_path)

    assert bucket.list_objects("flow/") == []
