"""Cache-aside thumbnails stored under a root that mirrors the document tree.

A thumbnail is keyed by the virtual path of its source image. Callers that
move, rename, replace or delete a source must relocate or purge the cached
entry in the same request; failures here are logged and reported as
``None``/``False`` rather than raised, since every thumbnail can be
regenerated from its source.
"""

from __future__ import annotations

import io
import logging
import os
import shutil
import tempfile
from pathlib import Path

from PIL import Image

from ..config import Settings
from .paths import PathResolver
from .policy import PolicyEvaluator
from .storage import StorageBackend

logger = logging.getLogger(__name__)

_RESAMPLING_FILTER = Image.Resampling.LANCZOS


def _image_format(path: Path) -> str:
    return Image.registered_extensions().get(path.suffix.lower(), 'PNG')


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


class ThumbnailCache:
    def __init__(self, root: Path | str, storage: StorageBackend, policy: PolicyEvaluator, config: Settings):
        self.resolver = PathResolver(root)
        self.root = self.resolver.root
        self.storage = storage
        self.policy = policy
        self.max_size = (config.thumbnail_max_width, config.thumbnail_max_height)

    def path_for(self, virtual_path: str) -> Path | None:
        resolved = self.resolver.resolve(virtual_path)
        if not resolved.ok or self.resolver.is_root(resolved.unwrap()):
            return None
        return resolved.unwrap()

    def get(self, virtual_path: str, create_if_missing: bool = False) -> Path | None:
        thumbnail = self.path_for(virtual_path)
        if thumbnail is None:
            return None
        if thumbnail.is_file():
            return thumbnail
        if not create_if_missing:
            return None

        source = self._source(virtual_path)
        if source is None:
            return None
        try:
            thumbnail.parent.mkdir(parents=True, exist_ok=True)
            self._write_atomic(thumbnail, self._scaled(source), _image_format(source))
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.error('Error during thumbnail generation for %s: %s', virtual_path, exc)
            return None
        return thumbnail

    def render(self, virtual_path: str) -> bytes | None:
        source = self._source(virtual_path)
        if source is None:
            return None
        buffer = io.BytesIO()
        try:
            image = self._scaled(source)
            self._prepare(image, _image_format(source)).save(buffer, format=_image_format(source))
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.error('Error rendering thumbnail for %s: %s', virtual_path, exc)
            return None
        return buffer.getvalue()

    def relocate(self, old_virtual_path: str, new_virtual_path: str) -> bool:
        old = self.path_for(old_virtual_path)
        new = self.path_for(new_virtual_path)
        if old is None or not old.exists():
            return True
        try:
            if new is None:
                _remove(old)
                return True
            if new.exists():
                _remove(new)
            new.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(old), str(new))
        except OSError as exc:
            logger.warning('Unable to relocate thumbnail %s -> %s: %s', old_virtual_path, new_virtual_path, exc)
            return False
        return True

    def purge(self, virtual_path: str) -> bool:
        thumbnail = self.path_for(virtual_path)
        if thumbnail is None or not thumbnail.exists():
            return True
        try:
            _remove(thumbnail)
        except OSError as exc:
            logger.warning('Unable to purge thumbnail %s: %s', virtual_path, exc)
            return False
        return True

    def _source(self, virtual_path: str) -> Path | None:
        resolved = self.storage.resolve_path(virtual_path)
        if not resolved.ok:
            return None
        source = resolved.unwrap()
        if not self.storage.exists(source) or self.storage.is_dir(source):
            return None
        if not self.storage.can_read(source) or not self.policy.is_image(source.name):
            return None
        return source

    def _scaled(self, source: Path) -> Image.Image:
        with Image.open(io.BytesIO(self.storage.read_entry(source))) as image:
            image.load()
            scaled = image.copy()
        scaled.thumbnail(self.max_size, _RESAMPLING_FILTER)
        return scaled

    @staticmethod
    def _prepare(image: Image.Image, image_format: str) -> Image.Image:
        if image_format == 'JPEG' and image.mode not in ('RGB', 'L'):
            return image.convert('RGB')
        return image

    def _write_atomic(self, target: Path, image: Image.Image, image_format: str) -> None:
        fd, tmp_path = tempfile.mkstemp(prefix=f'.{target.name}.', suffix='.tmp', dir=str(target.parent))
        try:
            with os.fdopen(fd, 'wb') as handle:
                self._prepare(image, image_format).save(handle, format=image_format)
            os.replace(tmp_path, target)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise
