from __future__ import annotations

from pathlib import Path
from typing import List, Union

import cv2
import numpy as np

from face_registry.errors import NoFaceDetected
from face_registry.face.extractor import EmbeddingExtractor
from face_registry.face.gallery import DescriptorStore
from face_registry.face.matcher import EuclideanMatcher, MatchResult, NoMatch
from face_registry.utils.log import get_logger

logger = get_logger(__name__)

ImageInput = Union[str, Path, np.ndarray]


def load_image(image: ImageInput) -> np.ndarray:
    """Accept a BGR array or an image path."""
    if isinstance(image, np.ndarray):
        return image
    img = cv2.imread(str(image))
    if img is None:
        raise FileNotFoundError(f"Unable to read image: {image}")
    return img


class FaceRecognitionService:
    """Enrollment/recognition front door.

    Owns nothing global: the extractor, store and matcher are handed in by the
    caller. When several faces are detected the first one is used, for both
    enrollment and recognition.
    """

    def __init__(self, extractor: EmbeddingExtractor, store: DescriptorStore, matcher: EuclideanMatcher):
        self.extractor = extractor
        self.store = store
        self.matcher = matcher

    def _first_embedding(self, image: ImageInput):
        results = self.extractor.extract(load_image(image))
        if not results:
            return None
        if len(results) > 1:
            logger.info(f"Detected {len(results)} faces, using the first")
        return results[0].embedding

    def register_face(self, image: ImageInput, label: str) -> None:
        embedding = self._first_embedding(image)
        if embedding is None:
            raise NoFaceDetected("No face detected in the image")
        self.store.upsert(label, embedding)

    def recognize_face(self, image: ImageInput) -> MatchResult:
        candidates = self.store.all_entries()
        # No registered faces to compare with: skip extraction entirely.
        if not candidates:
            return NoMatch()
        embedding = self._first_embedding(image)
        if embedding is None:
            return NoMatch()
        return self.matcher.find_best_match(embedding, candidates)

    def registered_users(self) -> List[str]:
        return self.store.list_labels()

    def delete_registered_user(self, label: str) -> bool:
        return self.store.delete(label)
