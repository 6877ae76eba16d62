"""Command-line entry: enroll, recognize, list and delete identities from image files."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from face_registry.config import DEFAULT_DISTANCE_THRESHOLD, DEFAULT_STORAGE_DIR, INSIGHTFACE_DET_SIZE
from face_registry.errors import FaceRegistryError
from face_registry.face.extractor import EmbeddingExtractor, InsightFaceExtractor
from face_registry.face.gallery import DescriptorStore
from face_registry.face.matcher import EuclideanMatcher, Match, MatcherConfig
from face_registry.face.service import FaceRecognitionService
from face_registry.storage import FileKeyValueStorage
from face_registry.utils.log import get_logger
from face_registry.utils.math import confidence_percent

logger = get_logger(__name__)


def build_service(
    storage_dir: Path,
    threshold: float = DEFAULT_DISTANCE_THRESHOLD,
    extractor: Optional[EmbeddingExtractor] = None,
    det_size: int = INSIGHTFACE_DET_SIZE,
) -> FaceRecognitionService:
    store = DescriptorStore(FileKeyValueStorage(Path(storage_dir)))
    store.load_from_durable_storage()
    matcher = EuclideanMatcher(MatcherConfig(threshold=float(threshold)))
    if extractor is None:
        extractor = InsightFaceExtractor(det_size=det_size)
    return FaceRecognitionService(extractor, store, matcher)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Face registry: enroll and recognize identities")
    parser.add_argument("--storage-dir", "-s", type=Path, default=DEFAULT_STORAGE_DIR, help="Registry directory")
    parser.add_argument(
        "--threshold", "-t", type=float, default=DEFAULT_DISTANCE_THRESHOLD, help="Euclidean match threshold"
    )
    parser.add_argument("--det-size", type=int, default=INSIGHTFACE_DET_SIZE, help="InsightFace det_size")
    sub = parser.add_subparsers(dest="command", required=True)

    p_reg = sub.add_parser("register", help="Enroll (or replace) an identity from an image")
    p_reg.add_argument("image")
    p_reg.add_argument("label")

    p_rec = sub.add_parser("recognize", help="Match the first face in an image")
    p_rec.add_argument("image")

    sub.add_parser("list", help="List enrolled identities")

    p_del = sub.add_parser("delete", help="Remove an identity")
    p_del.add_argument("label")
    return parser


def main(argv: Optional[List[str]] = None, extractor: Optional[EmbeddingExtractor] = None) -> int:
    args = _parser().parse_args(argv)

    service = build_service(args.storage_dir, threshold=args.threshold, extractor=extractor, det_size=args.det_size)

    try:
        if args.command == "register":
            service.register_face(args.image, args.label)
            print(f"Registered {args.label.strip()}")
        elif args.command == "recognize":
            result = service.recognize_face(args.image)
            if isinstance(result, Match):
                print(f"{result.label}\t{result.distance:.4f}\t{confidence_percent(result.distance):.1f}%")
            else:
                print("No match")
                return 1
        elif args.command == "list":
            for label in service.registered_users():
                print(label)
        elif args.command == "delete":
            if not service.delete_registered_user(args.label):
                print(f"Not registered: {args.label}")
                return 1
            print(f"Deleted {args.label.strip()}")
    except (FaceRegistryError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
