from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from PIL import Image

from .errors import ErrorKind, Result, err, ok
from .paths import name_of
from .policy import PolicyEvaluator
from .storage import StorageBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryDescriptor:
    id: str
    type: str
    name: str
    path: str
    size: int
    width: int
    height: int
    created: datetime
    modified: datetime
    readable: bool
    writable: bool


def image_size(source: BinaryIO) -> tuple[int, int]:
    """Width and height from the image header, ``(0, 0)`` when it cannot be decoded."""
    try:
        with Image.open(source) as image:
            return image.size
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        logger.debug('Unable to read image dimensions: %s', exc)
        return 0, 0


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class MetadataReader:
    def __init__(self, storage: StorageBackend, policy: PolicyEvaluator):
        self.storage = storage
        self.policy = policy

    def describe(self, virtual_path: str) -> Result[EntryDescriptor]:
        resolved = self.storage.resolve_path(virtual_path)
        if not resolved.ok:
            return resolved
        path = resolved.unwrap()
        virtual = self.storage.normalize_path(virtual_path).unwrap()

        if not self.storage.exists(path):
            return err(ErrorKind.NOT_FOUND, virtual_path)

        is_dir = self.storage.is_dir(path)
        if is_dir != virtual.endswith('/'):
            return err(ErrorKind.INVALID_PATH, virtual_path)

        try:
            st = self.storage.stat_entry(path)
        except OSError as exc:
            logger.warning('Error reading attributes of %s: %s', path, exc)
            return err(ErrorKind.IO_ERROR, virtual_path)

        readable = self.storage.can_read(path)
        name = name_of(virtual) if virtual != '/' else self.storage.root.name
        size = width = height = 0
        if not is_dir and readable:
            size = st.st_size
            if size > 0 and self.policy.is_image(name):
                width, height = self._dimensions(path)

        created = getattr(st, 'st_birthtime', None) or st.st_ctime
        return ok(
            EntryDescriptor(
                id=virtual,
                type='folder' if is_dir else 'file',
                name=name,
                path=virtual,
                size=size,
                width=width,
                height=height,
                created=_timestamp(created),
                modified=_timestamp(st.st_mtime),
                readable=readable,
                writable=self.storage.can_write(path),
            )
        )

    def _dimensions(self, path: Path) -> tuple[int, int]:
        try:
            with self.storage.open_entry(path) as handle:
                return image_size(handle)
        except OSError as exc:
            logger.debug('Unable to open %s for dimensions: %s', path, exc)
            return 0, 0
