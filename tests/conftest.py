from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from filemanager.config import load_settings
from filemanager.services.file_ops import FileOps, UploadItem


@pytest.fixture
def make_settings(tmp_path):
    def _make(**options):
        merged = {
            'file_root': str(tmp_path / 'userfiles'),
            'thumbnail_dir': str(tmp_path / 'thumbs'),
            **options,
        }
        return load_settings(merged)

    return _make


@pytest.fixture
def make_ops(make_settings):
    def _make(**options):
        return FileOps(make_settings(**options))

    return _make


@pytest.fixture
def ops(make_ops):
    return make_ops()


@pytest.fixture
def root(ops) -> Path:
    return ops.storage.root


@pytest.fixture
def thumbs(ops) -> Path:
    return ops.thumbnails.root


@pytest.fixture
def make_image():
    def _make(path: Path, size=(200, 100), color=(200, 30, 30)) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new('RGB', size, color).save(path)
        return path

    return _make


@pytest.fixture
def upload_item():
    def _make(filename: str, content: bytes = b'hello world') -> UploadItem:
        return UploadItem(filename=filename, stream=io.BytesIO(content), size=len(content))

    return _make
