"""JSON codec for the durable registry blob.

Wire shape (interoperable with blobs written by the browser build)::

    [{"label": "alice", "descriptors": [[0.01, -0.12, ...]]}, ...]
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from face_registry.errors import PersistenceReadFailure
from face_registry.utils.math import is_valid_embedding


@dataclass
class DecodedRecord:
    label: str
    embeddings: List[np.ndarray]


@dataclass
class DecodeReport:
    records: List[DecodedRecord] = field(default_factory=list)
    # (record index, reason) for every record that was dropped
    skipped: List[Tuple[int, str]] = field(default_factory=list)
    dimension: Optional[int] = None


def encode(entries: Sequence[Tuple[str, Sequence[np.ndarray]]]) -> str:
    """Serialize (label, embeddings) pairs as plain numeric arrays."""
    payload = [
        {
            "label": str(label),
            "descriptors": [[float(x) for x in np.asarray(e, dtype=np.float32).reshape(-1)] for e in embs],
        }
        for label, embs in entries
    ]
    # allow_nan=False: NaN/Infinity are not valid JSON for other readers of the slot
    return json.dumps(payload, allow_nan=False, ensure_ascii=False)


def _decode_vector(raw: Any) -> Optional[np.ndarray]:
    if not isinstance(raw, (list, tuple)):
        return None
    if any(isinstance(x, bool) or not isinstance(x, (int, float)) for x in raw):
        return None
    try:
        vec = np.asarray(raw, dtype=np.float32).reshape(-1)
    except (TypeError, ValueError, OverflowError):
        return None
    if not is_valid_embedding(vec):
        return None
    return vec


def decode(blob: str, dimension: Optional[int] = None) -> DecodeReport:
    """Parse a blob into records.

    Raises PersistenceReadFailure only when the blob as a whole is unusable.
    Bad records are skipped and listed in the report. The first valid
    embedding fixes the dimension unless `dimension` is given.
    """
    try:
        data = json.loads(blob)
    except (TypeError, ValueError, RecursionError) as e:
        raise PersistenceReadFailure(f"Registry blob is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise PersistenceReadFailure(f"Registry blob must be a JSON array, got {type(data).__name__}")

    report = DecodeReport(dimension=dimension)
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            report.skipped.append((idx, "record is not an object"))
            continue
        label = item.get("label")
        if not isinstance(label, str) or not label.strip():
            report.skipped.append((idx, "missing or empty label"))
            continue
        raw_descs = item.get("descriptors")
        if not isinstance(raw_descs, list) or not raw_descs:
            report.skipped.append((idx, f"label {label!r}: missing descriptors"))
            continue

        vecs: List[np.ndarray] = []
        dim = report.dimension
        reason = None
        for raw in raw_descs:
            vec = _decode_vector(raw)
            if vec is None:
                reason = "unparsable numeric array"
                break
            if dim is None:
                dim = int(vec.shape[0])
            elif vec.shape[0] != dim:
                reason = f"length {vec.shape[0]} != {dim}"
                break
            vecs.append(vec)
        if reason is not None:
            report.skipped.append((idx, f"label {label!r}: {reason}"))
            continue

        report.dimension = dim
        report.records.append(DecodedRecord(label=label.strip(), embeddings=vecs))
    return report
