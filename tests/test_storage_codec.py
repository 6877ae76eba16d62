from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from face_registry.errors import PersistenceReadFailure
from face_registry.face import codec
from face_registry.storage import FileKeyValueStorage, MemoryKeyValueStorage


def test_file_storage_set_get_remove(tmp_path: Path):
    storage = FileKeyValueStorage(tmp_path / "kv")
    assert storage.get_item("faceDescriptors") is None

    storage.set_item("faceDescriptors", "[]")
    assert storage.get_item("faceDescriptors") == "[]"
    storage.set_item("faceDescriptors", '[{"label": "é"}]')
    assert json.loads(storage.get_item("faceDescriptors")) == [{"label": "é"}]
    # no temp files left behind
    assert [p.name for p in (tmp_path / "kv").iterdir()] == ["faceDescriptors.json"]

    storage.remove_item("faceDescriptors")
    assert storage.get_item("faceDescriptors") is None
    storage.remove_item("faceDescriptors")


@pytest.mark.parametrize("key", ["../escape", "a/b", "", ".."])
def test_file_storage_rejects_path_like_keys(tmp_path: Path, key: str):
    with pytest.raises(ValueError):
        FileKeyValueStorage(tmp_path).set_item(key, "x")


def test_memory_storage():
    storage = MemoryKeyValueStorage({"k": "v"})
    assert storage.get_item("k") == "v"
    storage.remove_item("k")
    assert storage.get_item("k") is None


def test_encode_rejects_non_finite_values():
    with pytest.raises(ValueError):
        codec.encode([("a", [np.array([np.inf, 0.0], dtype=np.float32)])])


def test_decode_reports_skipped_records():
    blob = json.dumps(
        [
            {"label": "a", "descriptors": [[1, 2], [3, 4]]},
            {"label": "b", "descriptors": [[1, 2], [3]]},
            {"label": "c", "descriptors": [[True, 2]]},
            {"label": "d", "descriptors": []},
        ]
    )
    report = codec.decode(blob)
    assert [r.label for r in report.records] == ["a"]
    assert len(report.records[0].embeddings) == 2
    assert report.dimension == 2
    assert [idx for idx, _ in report.skipped] == [1, 2, 3]


def test_decode_respects_given_dimension():
    blob = json.dumps([{"label": "a", "descriptors": [[1, 2, 3]]}])
    assert codec.decode(blob, dimension=2).records == []


@pytest.mark.parametrize("blob", ["", "nope", '{"label": "a"}', "42"])
def test_decode_whole_blob_failures(blob: str):
    with pytest.raises(PersistenceReadFailure):
        codec.decode(blob)


def test_decode_skips_out_of_range_integers():
    blob = '[{"label":"bad","descriptors":[[' + "9" * 400 + ',1]]},{"label":"ok","descriptors":[[1,2]]}]'
    report = codec.decode(blob)
    assert [r.label for r in report.records] == ["ok"]
    assert [idx for idx, _ in report.skipped] == [0]


def test_decode_deeply_nested_blob_is_read_failure():
    with pytest.raises(PersistenceReadFailure):
        codec.decode("[" * 100000 + "]" * 100000)
