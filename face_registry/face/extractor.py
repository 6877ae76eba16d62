"""Embedding extraction collaborators.

The registry never looks at pixels: anything that turns an image into a list of
`ExtractionResult` can be plugged into `FaceRecognitionService`.
"""
from __future__ import annotations

import io
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np
import torch

from face_registry.config import INSIGHTFACE_DET_SIZE, INSIGHTFACE_MODEL
from face_registry.utils.log import get_logger, suppress_fds

logger = get_logger(__name__)

# Model instances are expensive to build; cache per (model, providers, ctx_id, det_size).
_FACEAPP_CACHE: Dict[Tuple, Any] = {}


@dataclass
class ExtractionResult:
    embedding: np.ndarray
    bbox: Optional[Tuple[int, int, int, int]] = None
    score: float = 0.0


class EmbeddingExtractor(Protocol):
    def extract(self, image: np.ndarray) -> List[ExtractionResult]: ...


class InsightFaceExtractor:
    """Wraps an InsightFace `FaceAnalysis` app (detection + recognition).

    Results keep the detector's order; callers that need one face take the first.
    `app` may be injected (anything with `.get(bgr_image)` returning faces that
    expose `embedding`/`bbox`/`det_score`); otherwise the model is loaded lazily.
    """

    def __init__(
        self,
        app: Any = None,
        model_name: str = INSIGHTFACE_MODEL,
        det_size: int = INSIGHTFACE_DET_SIZE,
        device: str = "auto",
        normalize: bool = False,
    ):
        self.model_name = model_name
        self.det_size = (int(det_size), int(det_size))
        self.device = device
        self.normalize = bool(normalize)
        self._app = app

    def _load_app(self):
        # Lazy: keep insightface/onnxruntime out of import time.
        from insightface.app import FaceAnalysis

        if self.device == "auto":
            try:
                device = "gpu" if torch.cuda.is_available() else "cpu"
            except Exception:
                device = "cpu"
        else:
            device = self.device

        if device == "gpu":
            providers = ["CUDAExecutionProvider"]
            ctx_id = 0
        else:
            providers = ["CPUExecutionProvider"]
            ctx_id = -1

        key = (self.model_name, tuple(providers), ctx_id, self.det_size)
        cached = _FACEAPP_CACHE.get(key)
        if cached is not None:
            return cached

        with suppress_fds():
            app = FaceAnalysis(
                name=self.model_name,
                providers=providers,
                allowed_modules=["detection", "recognition"],
            )
        buf = io.StringIO()
        with redirect_stdout(buf), redirect_stderr(buf):
            app.prepare(ctx_id=ctx_id, det_size=self.det_size)
        logger.info(f"Loaded InsightFace model: {self.model_name} ({device})")
        _FACEAPP_CACHE[key] = app
        return app

    @property
    def app(self):
        if self._app is None:
            self._app = self._load_app()
        return self._app

    def extract(self, image: np.ndarray) -> List[ExtractionResult]:
        faces: Sequence[Any] = self.app.get(image) or []
        results: List[ExtractionResult] = []
        for face in faces:
            emb = getattr(face, "normed_embedding", None) if self.normalize else None
            if emb is None:
                emb = getattr(face, "embedding", None)
            if emb is None:
                continue
            bbox = getattr(face, "bbox", None)
            results.append(
                ExtractionResult(
                    embedding=np.asarray(emb, dtype=np.float32).reshape(-1),
                    bbox=tuple(int(v) for v in bbox) if bbox is not None else None,
                    score=float(getattr(face, "det_score", 0.0)),
                )
            )
        return results
