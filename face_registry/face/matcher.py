from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import torch

from face_registry.config import DEFAULT_DISTANCE_THRESHOLD
from face_registry.errors import InvalidQuery
from face_registry.face.gallery import LabeledDescriptor
from face_registry.utils.log import get_logger
from face_registry.utils.math import is_valid_embedding

logger = get_logger(__name__)


@dataclass
class MatcherConfig:
    # Accept when the nearest Euclidean distance is strictly below this.
    threshold: float = DEFAULT_DISTANCE_THRESHOLD
    # 'auto' uses CUDA when available, otherwise numpy on CPU.
    device: str = "auto"


@dataclass(frozen=True)
class Match:
    label: str
    # Raw Euclidean distance; see utils.math.confidence_percent for display.
    distance: float


@dataclass(frozen=True)
class NoMatch:
    # Nearest distance seen, None when nothing was comparable.
    nearest_distance: Optional[float] = None


MatchResult = Union[Match, NoMatch]


class EuclideanMatcher:
    """Nearest-neighbour lookup over every (label, embedding) pair.

    Stateless between calls. Pairs whose length differs from the query are left
    out of the scan. Ties resolve to the first pair in candidate order (both
    backends return the first index of the minimum).
    """

    def __init__(self, config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()
        self._device: Optional[str] = None

    def _auto_device(self) -> str:
        if self._device is not None:
            return self._device
        if self.config.device != "auto":
            self._device = self.config.device
            return self._device
        try:
            self._device = "cuda" if torch.cuda.is_available() else "cpu"
        except Exception:
            self._device = "cpu"
        return self._device

    @staticmethod
    def _flatten(query: np.ndarray, candidates: Sequence[LabeledDescriptor]) -> Tuple[List[str], Optional[np.ndarray]]:
        labels: List[str] = []
        rows: List[np.ndarray] = []
        dim = int(query.shape[0])
        for cand in candidates:
            for emb in cand.embeddings:
                vec = np.asarray(emb, dtype=np.float32)
                if vec.ndim != 1 or int(vec.shape[0]) != dim:
                    continue
                labels.append(cand.label)
                rows.append(vec)
        if not rows:
            return labels, None
        return labels, np.stack(rows, axis=0)

    def _distances_torch(self, q: np.ndarray, mat: np.ndarray) -> np.ndarray:
        device = self._auto_device()
        q_t = torch.from_numpy(q.astype(np.float64)).to(device)
        m_t = torch.from_numpy(mat.astype(np.float64)).to(device)
        d_t = torch.cdist(q_t.unsqueeze(0), m_t, compute_mode="donot_use_mm_for_euclid_dist").squeeze(0)
        return d_t.detach().cpu().numpy()

    @staticmethod
    def _distances_numpy(q: np.ndarray, mat: np.ndarray) -> np.ndarray:
        diff = mat.astype(np.float64) - q.astype(np.float64)
        return np.sqrt(np.sum(diff * diff, axis=1))

    def _compute(self, q: np.ndarray, mat: np.ndarray) -> np.ndarray:
        if self._auto_device() == "cuda":
            try:
                return self._distances_torch(q, mat)
            except Exception as e:
                logger.warning(f"torch distance backend failed, falling back to numpy: {e}")
        return self._distances_numpy(q, mat)

    @staticmethod
    def _validate_query(query) -> np.ndarray:
        if query is None:
            raise InvalidQuery("Query embedding is None")
        try:
            q = np.asarray(query, dtype=np.float32)
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidQuery(f"Query embedding is not numeric: {e}") from e
        if not is_valid_embedding(q):
            raise InvalidQuery(f"Query embedding must be a non-empty finite 1D vector, got shape {q.shape}")
        return q

    def find_best_match(self, query, candidates: Sequence[LabeledDescriptor]) -> MatchResult:
        # Nothing enrolled: no comparison at all, not even query validation.
        if not candidates:
            return NoMatch()

        q = self._validate_query(query)
        labels, mat = self._flatten(q, candidates)
        if mat is None:
            logger.debug(f"No stored embeddings of length {q.shape[0]} to compare against")
            return NoMatch()

        dists = self._compute(q, mat)
        best_idx = int(np.argmin(dists))
        best_dist = float(dists[best_idx])

        if best_dist < float(self.config.threshold):
            return Match(label=labels[best_idx], distance=best_dist)
        return NoMatch(nearest_distance=best_dist)
