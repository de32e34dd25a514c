"""Gallery boundary: the records the engine matches against.

The engine only needs `list_all()` and `resolve_image_path()`. Record
storage itself (database, uploads) lives outside this package; the two
providers here cover a directory of photos and an in-process store.
"""
from __future__ import annotations

import threading

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from criminal_detector.config import IMAGE_EXTENSIONS
from criminal_detector.utils.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GalleryRecord:
    record_id: str
    image_path: str
    name: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def label(self) -> str:
        return self.name or self.record_id


class GalleryProvider(Protocol):
    def list_all(self) -> Sequence[GalleryRecord]: ...

    def resolve_image_path(self, record: GalleryRecord) -> Path: ...


class DirectoryGallery:
    """Every image file directly under `root` is one record.

    The record id is the file name, so `a.jpg` and `a.png` stay distinct;
    the stem is used as the display name.
    """

    def __init__(self, root, extensions: Tuple[str, ...] = IMAGE_EXTENSIONS):
        self.root = Path(root)
        self.extensions = tuple(e.lower() for e in extensions)

    def list_all(self) -> List[GalleryRecord]:
        if not self.root.is_dir():
            logger.warning(f"Gallery directory not found: {self.root}")
            return []
        files = sorted(p for p in self.root.iterdir() if p.is_file() and p.suffix.lower() in self.extensions)
        return [GalleryRecord(record_id=p.name, image_path=p.name, name=p.stem) for p in files]

    def resolve_image_path(self, record: GalleryRecord) -> Path:
        p = Path(record.image_path)
        return p if p.is_absolute() else self.root / p


class InMemoryGallery:
    """Insertion-ordered record store that notifies listeners on every change.

    Register `FaceMatchEngine.clear_embeddings_cache` as a listener so that
    adds, updates and deletes invalidate cached representations.
    """

    def __init__(self, records: Sequence[GalleryRecord] = (), upload_dir=None):
        self.upload_dir = Path(upload_dir) if upload_dir is not None else None
        self._lock = threading.Lock()
        self._records: Dict[str, GalleryRecord] = {}
        self._listeners: List[Callable[[], None]] = []
        for r in records:
            self._records[r.record_id] = r

    def add_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for cb in list(self._listeners):
            cb()

    def list_all(self) -> List[GalleryRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, record_id: str) -> Optional[GalleryRecord]:
        with self._lock:
            return self._records.get(str(record_id))

    def add(self, record: GalleryRecord) -> GalleryRecord:
        with self._lock:
            if record.record_id in self._records:
                raise KeyError(f"Record already exists: {record.record_id}")
            self._records[record.record_id] = record
        logger.info(f"Added record {record.record_id} ({record.label})")
        self._notify()
        return record

    def update(self, record: GalleryRecord) -> GalleryRecord:
        with self._lock:
            if record.record_id not in self._records:
                raise KeyError(f"Record not found: {record.record_id}")
            self._records[record.record_id] = record
        logger.info(f"Updated record {record.record_id}")
        self._notify()
        return record

    def delete(self, record_id: str) -> bool:
        with self._lock:
            removed = self._records.pop(str(record_id), None)
        if removed is None:
            return False
        logger.info(f"Deleted record {record_id}")
        self._notify()
        return True

    def resolve_image_path(self, record: GalleryRecord) -> Path:
        p = Path(record.image_path)
        if p.is_absolute() or self.upload_dir is None:
            return p
        return self.upload_dir / p
