from __future__ import annotations

import numpy as np


def as_embedding(vec) -> np.ndarray:
    """Copy a sequence/array into a float32 array (shape preserved)."""
    return np.array(vec, dtype=np.float32)


def is_valid_embedding(vec: np.ndarray) -> bool:
    """Non-empty, 1D and all finite."""
    arr = np.asarray(vec)
    return arr.ndim == 1 and arr.size > 0 and bool(np.all(np.isfinite(arr)))


def confidence_percent(distance: float) -> float:
    """Map a raw match distance to a 0-100 display confidence: (1 - d) * 100."""
    return float(max(0.0, min(100.0, (1.0 - float(distance)) * 100.0)))
