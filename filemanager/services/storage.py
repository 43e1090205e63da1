from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Protocol

from .errors import Result
from .paths import PathResolver

_CHUNK_SIZE = 1024 * 1024
FOLDER_MODE = 0o775


class StorageBackend(Protocol):
    root: Path

    def normalize_path(self, virtual_path: str | None) -> Result[str]:
        ...

    def resolve_path(self, virtual_path: str | None) -> Result[Path]:
        ...

    def stat_entry(self, path: Path) -> os.stat_result:
        ...

    def exists(self, path: Path) -> bool:
        ...

    def is_dir(self, path: Path) -> bool:
        ...

    def is_link(self, path: Path) -> bool:
        ...

    def is_root(self, path: Path) -> bool:
        ...

    def real_path(self, path: Path) -> Path:
        ...

    def can_read(self, path: Path) -> bool:
        ...

    def can_write(self, path: Path) -> bool:
        ...

    def list_entries(self, path: Path) -> list[str]:
        ...

    def open_entry(self, path: Path) -> BinaryIO:
        ...

    def read_entry(self, path: Path) -> bytes:
        ...

    def write_entry(self, path: Path, stream: BinaryIO) -> int:
        ...

    def write_text(self, path: Path, content: str) -> None:
        ...

    def make_dir(self, path: Path, parents: bool = False) -> None:
        ...

    def move_entry(self, source: Path, target: Path) -> None:
        ...

    def copy_entry(self, source: Path, target: Path) -> None:
        ...

    def delete_entry(self, path: Path) -> None:
        ...


def _fsync_dir(path: Path) -> None:
    dir_fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


class LocalStorage:
    """StorageBackend over the local disk. Raises OSError on host failures."""

    def __init__(self, root: Path | str):
        self.resolver = PathResolver(root)
        self.root = self.resolver.root

    def normalize_path(self, virtual_path: str | None) -> Result[str]:
        return self.resolver.normalize(virtual_path)

    def resolve_path(self, virtual_path: str | None) -> Result[Path]:
        return self.resolver.resolve(virtual_path)

    def stat_entry(self, path: Path) -> os.stat_result:
        return path.stat()

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_link(self, path: Path) -> bool:
        return path.is_symlink()

    def is_root(self, path: Path) -> bool:
        return self.resolver.is_root(path)

    def real_path(self, path: Path) -> Path:
        return path.resolve(strict=False)

    def can_read(self, path: Path) -> bool:
        return os.access(path, os.R_OK)

    def can_write(self, path: Path) -> bool:
        return os.access(path, os.W_OK)

    def list_entries(self, path: Path) -> list[str]:
        return [entry.name for entry in os.scandir(path)]

    def open_entry(self, path: Path) -> BinaryIO:
        return path.open('rb')

    def read_entry(self, path: Path) -> bytes:
        return path.read_bytes()

    def write_entry(self, path: Path, stream: BinaryIO) -> int:
        # Overwriting a link replaces the link, the file it points to is left alone.
        if path.is_symlink():
            path.unlink()
        written = 0
        with path.open('wb') as handle:
            while chunk := stream.read(_CHUNK_SIZE):
                handle.write(chunk)
                written += len(chunk)
            handle.flush()
            os.fsync(handle.fileno())
        return written

    def write_text(self, path: Path, content: str) -> None:
        fd, tmp_path = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=str(path.parent))
        try:
            mode = path.stat().st_mode & 0o777 if path.exists() else None
            with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            if mode is not None:
                os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
            _fsync_dir(path.parent)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def make_dir(self, path: Path, parents: bool = False) -> None:
        if parents and not path.parent.exists():
            self.make_dir(path.parent, parents=True)
        path.mkdir(mode=FOLDER_MODE, exist_ok=False)
        os.chmod(path, FOLDER_MODE)

    def move_entry(self, source: Path, target: Path) -> None:
        shutil.move(str(source), str(target))

    def copy_entry(self, source: Path, target: Path) -> None:
        if source.is_symlink():
            os.symlink(os.readlink(source), target)
        elif source.is_dir():
            shutil.copytree(source, target, symlinks=True)
        else:
            shutil.copy2(source, target)

    def delete_entry(self, path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
