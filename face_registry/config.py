"""Deployment defaults. Tune per deployment; components take these via their dataclass configs."""

import os
from pathlib import Path

# Euclidean acceptance threshold for 128-d dlib/face-api style descriptors.
DEFAULT_DISTANCE_THRESHOLD = 0.6

# Expected descriptor length. The store pins the real length at first insertion;
# this value only documents the extractor we ship against.
DEFAULT_EMBEDDING_DIM = 128

# Single durable slot holding the whole registry.
DEFAULT_STORAGE_KEY = "faceDescriptors"

DEFAULT_STORAGE_DIR = Path(os.environ.get("FACE_REGISTRY_DIR", Path.home() / ".face_registry"))

# InsightFace collaborator
INSIGHTFACE_MODEL = "buffalo_l"
INSIGHTFACE_DET_SIZE = 640
