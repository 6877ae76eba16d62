from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from face_registry.config import DEFAULT_STORAGE_KEY
from face_registry.errors import (
    FaceRegistryError,
    InvalidEmbedding,
    InvalidLabel,
    PersistenceReadFailure,
    PersistenceWriteFailure,
)
from face_registry.face import codec
from face_registry.storage import KeyValueStorage
from face_registry.utils.log import get_logger
from face_registry.utils.math import as_embedding, is_valid_embedding

logger = get_logger(__name__)

ErrorCallback = Callable[[FaceRegistryError], None]


@dataclass
class StoreConfig:
    # Durable slot holding the whole registry.
    storage_key: str = DEFAULT_STORAGE_KEY
    # Pin the embedding length up front; None = take it from the first insert/load.
    dimension: Optional[int] = None


@dataclass(frozen=True)
class LabeledDescriptor:
    """Snapshot of one enrolled identity. Arrays are read-only copies."""

    label: str
    embeddings: Tuple[np.ndarray, ...]


def _frozen_copy(vec: np.ndarray) -> np.ndarray:
    out = np.array(vec, dtype=np.float32, copy=True)
    out.setflags(write=False)
    return out


def _normalize_label(label) -> str:
    if not isinstance(label, str) or not label.strip():
        raise InvalidLabel(f"Label must be a non-empty string, got {label!r}")
    return label.strip()


class DescriptorStore:
    """Label-keyed embedding registry mirrored to one key-value slot.

    Re-registering a label replaces its embeddings (single-sample replace) and
    keeps its original position. Every mutation is followed by a synchronous
    save; save failures go to `on_error` and the log but never undo the
    in-memory change.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        config: Optional[StoreConfig] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.storage = storage
        self.config = config or StoreConfig()
        self.on_error = on_error
        self._lock = threading.RLock()
        self._label_to_embeddings: Dict[str, List[np.ndarray]] = {}
        self._dimension: Optional[int] = self.config.dimension

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __len__(self) -> int:
        with self._lock:
            return len(self._label_to_embeddings)

    def __contains__(self, label) -> bool:
        if not isinstance(label, str):
            return False
        with self._lock:
            return label.strip() in self._label_to_embeddings

    def _report(self, err: FaceRegistryError) -> None:
        if isinstance(err, PersistenceWriteFailure):
            logger.error(str(err))
        else:
            logger.warning(str(err))
        if self.on_error is not None:
            self.on_error(err)

    def upsert(self, label: str, embedding) -> None:
        name = _normalize_label(label)
        try:
            vec = as_embedding(embedding)
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidEmbedding(f"Embedding for {name!r} is not numeric: {e}") from e
        if not is_valid_embedding(vec):
            raise InvalidEmbedding(f"Embedding for {name!r} must be a non-empty finite 1D vector")

        with self._lock:
            if self._dimension is not None and vec.shape[0] != self._dimension:
                raise InvalidEmbedding(
                    f"Embedding for {name!r} has length {vec.shape[0]}, registry uses {self._dimension}"
                )
            replaced = name in self._label_to_embeddings
            self._label_to_embeddings[name] = [vec]
            if self._dimension is None:
                self._dimension = int(vec.shape[0])
            self._save()

        logger.info(f"{'Replaced' if replaced else 'Registered'} descriptor for {name!r}")

    def delete(self, label: str) -> bool:
        if not isinstance(label, str):
            return False
        name = label.strip()
        with self._lock:
            if name not in self._label_to_embeddings:
                return False
            del self._label_to_embeddings[name]
            if not self._label_to_embeddings:
                self._dimension = self.config.dimension
            self._save()
        logger.info(f"Deleted descriptor for {name!r}")
        return True

    def list_labels(self) -> List[str]:
        with self._lock:
            return list(self._label_to_embeddings.keys())

    def get(self, label: str) -> Optional[LabeledDescriptor]:
        with self._lock:
            embs = self._label_to_embeddings.get(label.strip()) if isinstance(label, str) else None
            if embs is None:
                return None
            return LabeledDescriptor(label=label.strip(), embeddings=tuple(_frozen_copy(e) for e in embs))

    def all_entries(self) -> List[LabeledDescriptor]:
        with self._lock:
            return [
                LabeledDescriptor(label=name, embeddings=tuple(_frozen_copy(e) for e in embs))
                for name, embs in self._label_to_embeddings.items()
            ]

    def load_from_durable_storage(self) -> None:
        """Replace in-memory state with the persisted registry.

        Missing blob -> empty store. Unreadable blob -> store unchanged and a
        PersistenceReadFailure is reported. Bad records are skipped.
        """
        key = self.config.storage_key
        with self._lock:
            try:
                blob = self.storage.get_item(key)
            except (OSError, ValueError) as e:
                self._report(PersistenceReadFailure(f"Failed to read registry slot {key!r}: {e}"))
                return

            if blob is None:
                self._label_to_embeddings = {}
                self._dimension = self.config.dimension
                logger.info(f"No persisted registry under {key!r}; starting empty")
                return

            try:
                report = codec.decode(blob, dimension=self.config.dimension)
            except PersistenceReadFailure as e:
                self._report(e)
                return

            loaded: Dict[str, List[np.ndarray]] = {}
            for rec in report.records:
                # last record wins, same as upsert
                loaded[rec.label] = rec.embeddings
            self._label_to_embeddings = loaded
            self._dimension = report.dimension

        for idx, reason in report.skipped:
            logger.warning(f"Skipped persisted record #{idx}: {reason}")
        logger.info(f"Loaded {len(loaded)} identities from {key!r} ({len(report.skipped)} skipped)")

    def _save(self) -> None:
        key = self.config.storage_key
        try:
            blob = codec.encode(list(self._label_to_embeddings.items()))
            self.storage.set_item(key, blob)
        except (OSError, TypeError, ValueError) as e:
            self._report(PersistenceWriteFailure(f"Failed to persist registry to {key!r}: {e}"))
