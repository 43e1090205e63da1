from __future__ import annotations

from pathlib import Path

from .errors import ErrorKind, Result, err, ok


def _within(base: Path, candidate: Path) -> bool:
    return base == candidate or base in candidate.parents


def validate_path(requested_path: str, base_dir: Path) -> Path | None:
    """Return the entry itself, never what a symlink points to.

    The parent directory is resolved and must stay under the base. When the
    entry is a link, its target must stay under the base as well.
    """
    base = base_dir.resolve(strict=False)
    candidate = base / requested_path.lstrip('/')
    if candidate.name in ('', '.', '..'):
        resolved = candidate.resolve(strict=False)
        return resolved if _within(base, resolved) else None

    parent = candidate.parent.resolve(strict=False)
    if not _within(base, parent):
        return None
    entry = parent / candidate.name
    if not _within(base, entry.resolve(strict=False)):
        return None
    return entry


def parent_of(virtual_path: str) -> str:
    trimmed = virtual_path.rstrip('/')
    if not trimmed:
        return '/'
    return trimmed[: trimmed.rfind('/') + 1]


def name_of(virtual_path: str) -> str:
    return virtual_path.rstrip('/').rsplit('/', 1)[-1]


def as_directory(virtual_path: str) -> str:
    return virtual_path if virtual_path.endswith('/') else virtual_path + '/'


class PathResolver:
    """Maps virtual paths onto real paths confined to a single root directory."""

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve(strict=False)

    def normalize(self, virtual_path: str | None) -> Result[str]:
        if virtual_path is None or not virtual_path.strip():
            return err(ErrorKind.INVALID_PATH, virtual_path or '')
        if '\x00' in virtual_path:
            return err(ErrorKind.INVALID_PATH, virtual_path.replace('\x00', ''))

        # Outer whitespace belongs to the name; '/a.txt ' is not '/a.txt'.
        raw = virtual_path.replace('\\', '/')
        parts: list[str] = []
        for segment in raw.split('/'):
            if segment in ('', '.'):
                continue
            if segment == '..':
                return err(ErrorKind.INVALID_PATH, virtual_path)
            parts.append(segment)

        if not parts:
            return ok('/')
        normalized = '/' + '/'.join(parts)
        if raw.endswith('/'):
            normalized += '/'
        return ok(normalized)

    def resolve(self, virtual_path: str | None) -> Result[Path]:
        normalized = self.normalize(virtual_path)
        if not normalized.ok:
            return normalized
        target = validate_path(normalized.unwrap(), self.root)
        if target is None:
            return err(ErrorKind.INVALID_PATH, virtual_path)
        return ok(target)

    def is_root(self, real_path: Path) -> bool:
        return real_path == self.root
