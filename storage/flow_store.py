"""Flow-field artifacts kept in object storage, one JSON object per snapshot."""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, List, Optional

from models.records import ArtifactRef, Matrix, MatrixPair
from storage.object_store import ObjectBucket, build_default_bucket

logger = logging.getLogger(__name__)

_KEY_TIME_FORMAT = "%Y%m%dT%H%M%SZ"
_KEY_SUFFIX = ".json"


def _decode_matrix(raw: Any, label: str) -> Matrix:
    if not isinstance(raw, list) or not raw:
        raise ValueError(f"Matrix {label} must be a non-empty list of rows.")
    width = None
    rows: Matrix = []
    for row in raw:
        if not isinstance(row, list):
            raise ValueError(f"Matrix {label} contains a row that is not a list.")
        if width is None:
            width = len(row)
        elif len(row) != width:
            raise ValueError(f"Matrix {label} is not rectangular.")
        # Cells outside the lake are stored as null.
        rows.append([math.nan if cell is None else float(cell) for cell in row])
    return rows


def decode_matrix_pair(data: bytes) -> MatrixPair:
    payload = json.loads(data.decode("utf-8"))
    matrices = payload.get("matrices") if isinstance(payload, dict) else None
    if not isinstance(matrices, list) or len(matrices) != 2:
        raise ValueError("Flow artifact must hold a 'matrices' pair.")
    pair = MatrixPair(u=_decode_matrix(matrices[0], "u"), v=_decode_matrix(matrices[1], "v"))
    if len(pair.u) != len(pair.v) or len(pair.u[0]) != len(pair.v[0]):
        raise ValueError("Flow matrices u and v have different shapes.")
    return pair


def encode_matrix_pair(pair: MatrixPair) -> bytes:
    def _encode(matrix: Matrix) -> list:
        return [[None if math.isnan(cell) else cell for cell in row] for row in matrix]

    return json.dumps({"matrices": [_encode(pair.u), _encode(pair.v)]}).encode("utf-8")


class FlowArtifactStore:
    """Lists and downloads flow snapshots whose keys encode their UTC time."""

    def __init__(self, bucket: ObjectBucket, prefix: str = "flow/") -> None:
        self.bucket = bucket
        self.prefix = prefix

    def key_for(self, time: datetime) -> str:
        stamp = time.astimezone(timezone.utc).strftime(_KEY_TIME_FORMAT)
        return f"{self.prefix}{stamp}{_KEY_SUFFIX}"

    def list_artifacts(self) -> List[ArtifactRef]:
        """Return every parseable artifact, oldest first."""
        refs: List[ArtifactRef] = []
        for key in self.bucket.list_objects(self.prefix):
            stem = key[len(self.prefix):]
            if not stem.endswith(_KEY_SUFFIX):
                continue
            try:
                time = datetime.strptime(stem[: -len(_KEY_SUFFIX)], _KEY_TIME_FORMAT)
            except ValueError:
                logger.warning(
                    "Ignoring flow object with unexpected key",
                    extra={"artifact_id": key, "reason": "unparseable time"},
                )
                continue
            refs.append(ArtifactRef(id=key, time=time.replace(tzinfo=timezone.utc)))
        refs.sort(key=lambda ref: ref.time)
        return refs

    def download(self, artifact_id: str) -> MatrixPair:
        return decode_matrix_pair(self.bucket.get_object(artifact_id))

    def upload(self, time: datetime, u: Matrix, v: Matrix) -> ArtifactRef:
        key = self.key_for(time)
        self.bucket.put_object(key, encode_matrix_pair(MatrixPair(u=u, v=v)))
        return ArtifactRef(id=key, time=time.astimezone(timezone.utc))


@lru_cache
def build_default_flow_store(prefix: Optional[str] = None) -> FlowArtifactStore:
    bucket = build_default_bucket()
    return FlowArtifactStore(bucket, prefix="flow/" if prefix is None else prefix)
