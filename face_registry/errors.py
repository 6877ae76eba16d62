"""Error kinds.

Only input validation errors are raised to callers. Persistence failures are
constructed and handed to the store's error channel instead of being raised.
"""


class FaceRegistryError(Exception):
    """Base class for all registry errors."""


class InvalidLabel(FaceRegistryError, ValueError):
    """Empty or whitespace-only label."""


class InvalidQuery(FaceRegistryError, ValueError):
    """Malformed query embedding handed to the matcher."""


class InvalidEmbedding(FaceRegistryError, ValueError):
    """Embedding that cannot be enrolled (empty, non-finite or wrong length)."""


class PersistenceReadFailure(FaceRegistryError):
    """Durable blob present but unreadable."""


class PersistenceWriteFailure(FaceRegistryError):
    """Durable save failed; in-memory state is still authoritative."""


class NoFaceDetected(FaceRegistryError):
    """Extractor returned no faces for an enrollment image."""
