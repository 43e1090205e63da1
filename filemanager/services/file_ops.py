from __future__ import annotations

import contextlib
import logging
import mimetypes
import zipfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import BinaryIO

from ..config import Settings
from .errors import ErrorKind, InitializationError, OpError, Result, err, fail, ok
from .metadata import EntryDescriptor, MetadataReader
from .names import is_plain_name, normalize_filename, normalize_name
from .paths import as_directory, name_of, parent_of
from .policy import PolicyEvaluator, extension_of
from .storage import LocalStorage, StorageBackend
from .thumbnails import ThumbnailCache

logger = logging.getLogger(__name__)

ROOT_MODE = 0o755


@dataclass(frozen=True)
class UploadItem:
    filename: str
    stream: BinaryIO
    size: int


@dataclass(frozen=True)
class ItemError:
    filename: str
    error: OpError


@dataclass(frozen=True)
class UploadReport:
    entries: list[EntryDescriptor] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)


@dataclass(frozen=True)
class Summary:
    files: int
    folders: int
    size: int


@dataclass(frozen=True)
class InitiateData:
    read_only: bool
    extensions_allow_list: bool
    extensions: tuple[str, ...]
    upload_size_limit: int


@dataclass(frozen=True)
class FilePayload:
    path: Path
    filename: str
    media_type: str


@dataclass(frozen=True)
class BytesPayload:
    content: bytes
    filename: str
    media_type: str


@dataclass(frozen=True)
class EditableFile:
    entry: EntryDescriptor
    content: str


@dataclass(frozen=True)
class _Located:
    virtual: str
    path: Path


@dataclass(frozen=True)
class _Transfer:
    source: _Located
    target: _Located
    is_dir: bool


def guess_media_type(filename: str) -> str:
    media_type, _ = mimetypes.guess_type(filename)
    return media_type or 'application/octet-stream'


def _prepare_root(path: Path, label: str) -> None:
    if path.exists() and not path.is_dir():
        raise InitializationError(f'File manager {label} must be a directory: {path}')
    try:
        path.mkdir(mode=ROOT_MODE, parents=True, exist_ok=True)
    except OSError as exc:
        raise InitializationError(f'Unable to create the {label} directory: {path}') from exc


class FileOps:
    """File operations confined to a document root, with policy checks and thumbnail upkeep.

    Every public operation returns a :class:`Result`. Validation and
    authorization run before anything on disk changes; once the primary tree
    has been mutated the thumbnail cache is synchronized in the same call.
    """

    def __init__(self, config: Settings, storage: StorageBackend | None = None):
        self.config = config
        self.policy = PolicyEvaluator(config)
        if storage is None:
            _prepare_root(Path(config.file_root), 'root')
            storage = LocalStorage(config.file_root)
        self.storage = storage
        _prepare_root(Path(config.thumbnail_dir), 'thumbnail')
        self.metadata = MetadataReader(self.storage, self.policy)
        self.thumbnails = ThumbnailCache(config.thumbnail_dir, self.storage, self.policy, config)

    # -- helpers -----------------------------------------------------------

    def _locate(self, virtual_path: str | None) -> Result[_Located]:
        normalized = self.storage.normalize_path(virtual_path)
        if not normalized.ok:
            return normalized
        resolved = self.storage.resolve_path(normalized.unwrap())
        if not resolved.ok:
            return resolved
        return ok(_Located(normalized.unwrap(), resolved.unwrap()))

    def _canonical(self, virtual: str, is_dir: bool) -> str:
        if virtual == '/' or is_dir:
            return as_directory(virtual)
        return virtual.rstrip('/')

    def _existing_dir(self, virtual_path: str | None, *, writable: bool) -> Result[_Located]:
        located = self._locate(virtual_path)
        if not located.ok:
            return located
        target = located.unwrap()
        if not self.storage.exists(target.path) or not self.storage.is_dir(target.path):
            return err(ErrorKind.NOT_FOUND, virtual_path)
        allowed = self.storage.can_write(target.path) if writable else self.storage.can_read(target.path)
        if not allowed:
            return err(ErrorKind.PERMISSION_DENIED, virtual_path)
        return ok(_Located(as_directory(target.virtual), target.path))

    def _readable_file(self, virtual_path: str | None) -> Result[_Located]:
        located = self._locate(virtual_path)
        if not located.ok:
            return located
        target = located.unwrap()
        if not self.storage.exists(target.path):
            return err(ErrorKind.NOT_FOUND, virtual_path)
        if self.storage.is_dir(target.path):
            return err(ErrorKind.FORBIDDEN_DIRECTORY_ACTION, virtual_path)
        virtual = target.virtual.rstrip('/')
        if error := self.policy.check_restrictions(name_of(virtual), False):
            return fail(error)
        if not self.storage.can_read(target.path):
            return err(ErrorKind.PERMISSION_DENIED, virtual_path)
        return ok(_Located(virtual, target.path))

    def _already_exists(self, path: Path, virtual: str) -> OpError | None:
        if not self.storage.exists(path):
            return None
        if self.storage.is_dir(path):
            return OpError(ErrorKind.DIRECTORY_ALREADY_EXISTS, (virtual,))
        return OpError(ErrorKind.FILE_ALREADY_EXISTS, (virtual,))

    def _prepare_transfer(self, source: str, target_dir: str, new_name: str | None = None) -> Result[_Transfer]:
        destination = self._locate(target_dir)
        if not destination.ok:
            return destination
        dst_dir = destination.unwrap()
        if not self.storage.exists(dst_dir.path) or not self.storage.is_dir(dst_dir.path):
            return err(ErrorKind.NOT_FOUND, target_dir)

        located = self._locate(source)
        if not located.ok:
            return located
        src = located.unwrap()
        if not self.storage.exists(src.path):
            return err(ErrorKind.NOT_FOUND, source)
        if self.storage.is_root(src.path):
            return err(ErrorKind.FORBIDDEN_DIRECTORY_ACTION, source)
        if not self.storage.can_read(src.path) or not self.storage.can_write(dst_dir.path):
            return err(ErrorKind.PERMISSION_DENIED, source)

        is_dir = self.storage.is_dir(src.path)
        if is_dir and not self.storage.is_link(src.path):
            real_src = self.storage.real_path(src.path)
            real_dst = self.storage.real_path(dst_dir.path)
            if real_dst == real_src or real_src in real_dst.parents:
                return err(ErrorKind.INVALID_PATH, target_dir)

        name = new_name if new_name is not None else name_of(src.virtual)
        if error := self.policy.check_restrictions(name, is_dir):
            return fail(error)

        target_virtual = self._canonical(as_directory(dst_dir.virtual) + name, is_dir)
        resolved = self.storage.resolve_path(target_virtual)
        if not resolved.ok:
            return resolved
        if error := self._already_exists(resolved.unwrap(), target_virtual):
            return fail(error)

        return ok(
            _Transfer(
                source=_Located(self._canonical(src.virtual, is_dir), src.path),
                target=_Located(target_virtual, resolved.unwrap()),
                is_dir=is_dir,
            )
        )

    # -- queries -----------------------------------------------------------

    def initiate(self) -> Result[InitiateData]:
        return ok(
            InitiateData(
                read_only=self.policy.read_only,
                extensions_allow_list=self.config.extensions_policy_allow,
                extensions=tuple(sorted(self.config.extension_set)),
                upload_size_limit=self.config.upload_file_size_limit,
            )
        )

    def get_folder(self, virtual_path: str, type_filter: str | None = None) -> Result[list[EntryDescriptor]]:
        located = self._existing_dir(virtual_path, writable=False)
        if not located.ok:
            return located
        folder = located.unwrap()
        if not self.storage.is_root(folder.path):
            if error := self.policy.check_restrictions(name_of(folder.virtual), True):
                return fail(error)

        try:
            names = self.storage.list_entries(folder.path)
        except OSError as exc:
            logger.warning('Unable to open directory %s: %s', folder.path, exc)
            return err(ErrorKind.IO_ERROR, virtual_path)

        entries: list[EntryDescriptor] = []
        for name in names:
            is_dir = self.storage.is_dir(folder.path / name)
            if not self.policy.is_permitted(name, is_dir):
                continue
            if not is_dir and type_filter == 'images' and not self.policy.is_image(name):
                continue
            described = self.metadata.describe(self._canonical(folder.virtual + name, is_dir))
            if not described.ok:
                logger.debug('Skipping %s%s: %s', folder.virtual, name, described.error)
                continue
            entries.append(described.unwrap())
        return ok(entries)

    def get_file(self, virtual_path: str) -> Result[EntryDescriptor]:
        checked = self._readable_file(virtual_path)
        if not checked.ok:
            return checked
        return self.metadata.describe(checked.unwrap().virtual)

    def read_file(self, virtual_path: str) -> Result[FilePayload]:
        checked = self._readable_file(virtual_path)
        if not checked.ok:
            return checked
        target = checked.unwrap()
        name = name_of(target.virtual)
        return ok(FilePayload(target.path, name, guess_media_type(name)))

    def get_image(self, virtual_path: str, thumbnail: bool = False) -> Result[FilePayload | BytesPayload]:
        checked = self._readable_file(virtual_path)
        if not checked.ok:
            return checked
        target = checked.unwrap()
        name = name_of(target.virtual)
        if not self.policy.is_image(name):
            return err(ErrorKind.INVALID_FILE_TYPE, name)
        media_type = guess_media_type(name)
        if not thumbnail:
            return ok(FilePayload(target.path, name, media_type))

        if self.config.thumbnail_enabled:
            cached = self.thumbnails.get(target.virtual, create_if_missing=True)
            if cached is None:
                return err(ErrorKind.SERVER_ERROR)
            return ok(FilePayload(cached, name, media_type))

        rendered = self.thumbnails.render(target.virtual)
        if rendered is None:
            return err(ErrorKind.SERVER_ERROR)
        return ok(BytesPayload(rendered, name, media_type))

    def download(self, virtual_path: str) -> Result[FilePayload | BytesPayload]:
        located = self._locate(virtual_path)
        if not located.ok:
            return located
        target = located.unwrap()
        if not self.storage.exists(target.path):
            return err(ErrorKind.NOT_FOUND, virtual_path)
        if not self.storage.is_dir(target.path):
            return self.read_file(virtual_path)

        if not self.config.allow_folder_download or self.storage.is_root(target.path):
            return err(ErrorKind.FORBIDDEN_DIRECTORY_ACTION, virtual_path)
        name = name_of(target.virtual)
        if error := self.policy.check_restrictions(name, True):
            return fail(error)
        if not self.storage.can_read(target.path):
            return err(ErrorKind.PERMISSION_DENIED, virtual_path)

        folder = as_directory(target.virtual)
        archive = BytesIO()
        added = 0
        with zipfile.ZipFile(archive, mode='w', compression=zipfile.ZIP_DEFLATED) as zf:
            for virtual, path, is_dir in self._walk(folder, target.path, permitted_only=True):
                if is_dir:
                    continue
                try:
                    content = self.storage.read_entry(path)
                except OSError as exc:
                    logger.warning('Skipping %s in folder download: %s', virtual, exc)
                    continue
                zf.writestr(f'{name}/{virtual[len(folder):]}', content)
                added += 1
        if not added:
            return err(ErrorKind.DIRECTORY_EMPTY, name)
        return ok(BytesPayload(archive.getvalue(), f'{name}.zip', 'application/zip'))

    def edit_file(self, virtual_path: str) -> Result[EditableFile]:
        checked = self._readable_file(virtual_path)
        if not checked.ok:
            return checked
        target = checked.unwrap()
        if not self.policy.is_editable(target.path.name):
            return err(ErrorKind.INVALID_FILE_TYPE, name_of(target.virtual))
        if not self.storage.can_write(target.path):
            return err(ErrorKind.PERMISSION_DENIED, virtual_path)
        try:
            content = self.storage.read_entry(target.path).decode('utf-8')
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning('Unable to read %s for editing: %s', target.path, exc)
            return err(ErrorKind.IO_ERROR, virtual_path)
        described = self.metadata.describe(target.virtual)
        if not described.ok:
            return described
        return ok(EditableFile(described.unwrap(), content))

    def summarize(self) -> Result[Summary]:
        files = size = 0
        folders = 1
        for virtual, path, is_dir in self._walk('/', self.storage.root):
            if is_dir:
                folders += 1
                continue
            files += 1
            try:
                size += self.storage.stat_entry(path).st_size
            except OSError as exc:
                logger.debug('Unable to stat %s while summarizing: %s', virtual, exc)
        return ok(Summary(files=files, folders=folders, size=size))

    def _walk(self, folder: str, path: Path, *, permitted_only: bool = False) -> Iterator[tuple[str, Path, bool]]:
        """Yield ``(virtual, path, is_dir)`` for everything below ``folder``.

        Entries that resolve outside the root are skipped. Linked folders are
        reported but not descended into.
        """
        pending = [(folder, path)]
        while pending:
            current_virtual, current = pending.pop()
            try:
                names = self.storage.list_entries(current)
            except OSError as exc:
                logger.warning('Unable to list %s: %s', current_virtual, exc)
                continue
            for name in sorted(names):
                resolved = self.storage.resolve_path(current_virtual + name)
                if not resolved.ok:
                    continue
                child = resolved.unwrap()
                is_dir = self.storage.is_dir(child)
                if permitted_only and not self.policy.is_permitted(name, is_dir):
                    continue
                virtual = self._canonical(current_virtual + name, is_dir)
                yield virtual, child, is_dir
                if is_dir and not self.storage.is_link(child):
                    pending.append((virtual, child))

    # -- mutations ---------------------------------------------------------

    def add_folder(self, virtual_path: str, name: str) -> Result[EntryDescriptor]:
        folder_name = normalize_name(name, self.config)
        if error := self.policy.check_writable():
            return fail(error)
        located = self._existing_dir(virtual_path, writable=True)
        if not located.ok:
            return located
        parent = located.unwrap()
        if error := self.policy.check_restrictions(folder_name, True):
            return fail(error)
        if not is_plain_name(folder_name):
            return err(ErrorKind.FORBIDDEN_NAME, name)

        new_virtual = parent.virtual + folder_name + '/'
        resolved = self.storage.resolve_path(new_virtual)
        if not resolved.ok:
            return resolved
        if error := self._already_exists(resolved.unwrap(), new_virtual):
            return fail(error)
        try:
            self.storage.make_dir(resolved.unwrap())
        except OSError as exc:
            logger.warning('Unable to create directory %s: %s', resolved.unwrap(), exc)
            return err(ErrorKind.UNABLE_TO_CREATE_DIRECTORY, new_virtual)
        return self.metadata.describe(new_virtual)

    def move(self, source: str, target_dir: str) -> Result[EntryDescriptor]:
        if error := self.policy.check_writable():
            return fail(error)
        prepared = self._prepare_transfer(source, target_dir)
        if not prepared.ok:
            return prepared
        transfer = prepared.unwrap()
        try:
            self.storage.move_entry(transfer.source.path, transfer.target.path)
        except OSError as exc:
            logger.warning('Unable to move %s to %s: %s', transfer.source.virtual, transfer.target.virtual, exc)
            kind = ErrorKind.ERROR_MOVING_DIRECTORY if transfer.is_dir else ErrorKind.ERROR_MOVING_FILE
            return err(kind, target_dir)
        self.thumbnails.relocate(transfer.source.virtual, transfer.target.virtual)
        return self.metadata.describe(transfer.target.virtual)

    def rename(self, source: str, new_name: str) -> Result[EntryDescriptor]:
        if error := self.policy.check_writable():
            return fail(error)
        located = self._locate(source)
        if not located.ok:
            return located
        src = located.unwrap()
        if self.storage.exists(src.path) and self.storage.is_dir(src.path):
            target_name = normalize_name(new_name, self.config)
        else:
            target_name = normalize_filename(new_name, self.config)
        if not is_plain_name(new_name) or not is_plain_name(target_name):
            return err(ErrorKind.FORBIDDEN_NAME, new_name)
        if self.storage.exists(src.path) and not self.storage.can_write(src.path):
            return err(ErrorKind.PERMISSION_DENIED, source)

        prepared = self._prepare_transfer(source, parent_of(src.virtual), target_name)
        if not prepared.ok:
            return prepared
        transfer = prepared.unwrap()
        try:
            self.storage.move_entry(transfer.source.path, transfer.target.path)
        except OSError as exc:
            logger.warning('Unable to rename %s to %s: %s', transfer.source.virtual, target_name, exc)
            kind = ErrorKind.ERROR_RENAMING_DIRECTORY if transfer.is_dir else ErrorKind.ERROR_RENAMING_FILE
            return err(kind, name_of(transfer.source.virtual), target_name)
        self.thumbnails.relocate(transfer.source.virtual, transfer.target.virtual)
        return self.metadata.describe(transfer.target.virtual)

    def copy(self, source: str, target_dir: str) -> Result[EntryDescriptor]:
        if error := self.policy.check_writable():
            return fail(error)
        prepared = self._prepare_transfer(source, target_dir)
        if not prepared.ok:
            return prepared
        transfer = prepared.unwrap()
        try:
            self.storage.copy_entry(transfer.source.path, transfer.target.path)
        except OSError as exc:
            logger.warning('Unable to copy %s to %s: %s', transfer.source.virtual, transfer.target.virtual, exc)
            if self.storage.exists(transfer.target.path):
                with contextlib.suppress(OSError):
                    self.storage.delete_entry(transfer.target.path)
            kind = ErrorKind.ERROR_COPYING_DIRECTORY if transfer.is_dir else ErrorKind.ERROR_COPYING_FILE
            return err(kind, name_of(transfer.source.virtual), target_dir)
        return self.metadata.describe(transfer.target.virtual)

    def delete(self, virtual_path: str) -> Result[EntryDescriptor]:
        if error := self.policy.check_writable():
            return fail(error)
        located = self._locate(virtual_path)
        if not located.ok:
            return located
        target = located.unwrap()
        if not self.storage.exists(target.path):
            return err(ErrorKind.NOT_FOUND, virtual_path)
        if self.storage.is_root(target.path):
            return err(ErrorKind.FORBIDDEN_DIRECTORY_ACTION, virtual_path)
        if not self.storage.can_write(target.path):
            return err(ErrorKind.PERMISSION_DENIED, virtual_path)

        is_dir = self.storage.is_dir(target.path)
        virtual = self._canonical(target.virtual, is_dir)
        if error := self.policy.check_restrictions(name_of(virtual), is_dir):
            return fail(error)

        captured = self.metadata.describe(virtual)
        if not captured.ok:
            return captured
        try:
            self.storage.delete_entry(target.path)
        except OSError as exc:
            logger.warning('Unable to delete %s: %s', target.path, exc)
            return err(ErrorKind.IO_ERROR, virtual_path)
        self.thumbnails.purge(virtual)
        return captured

    def upload(self, virtual_path: str, items: Iterable[UploadItem]) -> Result[UploadReport]:
        if error := self.policy.check_writable():
            return fail(error)
        located = self._existing_dir(virtual_path, writable=True)
        if not located.ok:
            return located
        folder = located.unwrap()

        report = UploadReport()
        for item in items:
            stored = self._store_upload(folder, item)
            if stored.ok:
                report.entries.append(stored.unwrap())
            else:
                logger.info('Upload of %r rejected: %s', item.filename, stored.error)
                report.errors.append(ItemError(item.filename, stored.error))
        if report.errors and not report.entries:
            return fail(report.errors[0].error)
        return ok(report)

    def _store_upload(self, folder: _Located, item: UploadItem) -> Result[EntryDescriptor]:
        if item.size == 0:
            return err(ErrorKind.FILE_EMPTY, item.filename)
        filename = normalize_filename(item.filename, self.config)
        if not is_plain_name(filename):
            return err(ErrorKind.FORBIDDEN_NAME, item.filename)
        if error := self.policy.check_restrictions(filename, False):
            return fail(error)
        limit = self.config.upload_file_size_limit
        if item.size > limit:
            return err(ErrorKind.UPLOAD_FILE_TOO_BIG, filename)

        virtual = folder.virtual + filename
        resolved = self.storage.resolve_path(virtual)
        if not resolved.ok:
            return resolved
        target = resolved.unwrap()
        if self.storage.exists(target) and self.storage.is_dir(target):
            return err(ErrorKind.DIRECTORY_ALREADY_EXISTS, virtual)
        try:
            written = self.storage.write_entry(target, item.stream)
        except OSError as exc:
            logger.warning('Unable to write upload %s: %s', target, exc)
            return err(ErrorKind.IO_ERROR, filename)
        if written == 0 or written > limit:
            with contextlib.suppress(OSError):
                self.storage.delete_entry(target)
            self.thumbnails.purge(virtual)
            return err(ErrorKind.FILE_EMPTY if written == 0 else ErrorKind.UPLOAD_FILE_TOO_BIG, filename)
        self.thumbnails.purge(virtual)
        return self.metadata.describe(virtual)

    def replace(self, virtual_path: str, item: UploadItem) -> Result[EntryDescriptor]:
        if error := self.policy.check_writable():
            return fail(error)
        located = self._locate(virtual_path)
        if not located.ok:
            return located
        target = located.unwrap()
        if not self.storage.exists(target.path):
            return err(ErrorKind.NOT_FOUND, virtual_path)
        if self.storage.is_dir(target.path):
            return err(ErrorKind.FORBIDDEN_DIRECTORY_ACTION, virtual_path)
        virtual = target.virtual.rstrip('/')
        if error := self.policy.check_restrictions(name_of(virtual), False):
            return fail(error)
        if not self.storage.can_write(target.path.parent):
            return err(ErrorKind.PERMISSION_DENIED, virtual_path)

        folder = _Located(parent_of(virtual), target.path.parent)
        stored = self._store_upload(folder, item)
        if not stored.ok:
            return stored
        self.thumbnails.purge(virtual)
        if stored.unwrap().path != virtual:
            try:
                self.storage.delete_entry(target.path)
            except OSError as exc:
                logger.warning('Unable to remove replaced file %s: %s', target.path, exc)
                return err(ErrorKind.IO_ERROR, virtual_path)
        return stored

    def save_file(self, virtual_path: str, content: str) -> Result[EntryDescriptor]:
        if error := self.policy.check_writable():
            return fail(error)
        located = self._locate(virtual_path)
        if not located.ok:
            return located
        target = located.unwrap()
        if not self.storage.exists(target.path):
            return err(ErrorKind.NOT_FOUND, virtual_path)
        if self.storage.is_dir(target.path):
            return err(ErrorKind.FORBIDDEN_DIRECTORY_ACTION, virtual_path)
        virtual = target.virtual.rstrip('/')
        name = name_of(virtual)
        if not self.policy.is_editable(name):
            return err(ErrorKind.INVALID_FILE_TYPE, name)
        if not self.storage.can_write(target.path):
            return err(ErrorKind.PERMISSION_DENIED, virtual_path)
        if error := self.policy.check_restrictions(name, False):
            return fail(error)
        try:
            self.storage.write_text(target.path, content)
        except OSError as exc:
            logger.warning('Unable to save %s: %s', target.path, exc)
            return err(ErrorKind.IO_ERROR, virtual_path)
        return self.metadata.describe(virtual)

    def extract(self, archive_path: str, target_dir: str) -> Result[UploadReport]:
        if error := self.policy.check_writable():
            return fail(error)
        checked = self._readable_file(archive_path)
        if not checked.ok:
            return checked
        archive = checked.unwrap()
        if extension_of(archive.path.name) != 'zip':
            return err(ErrorKind.INVALID_FILE_TYPE, name_of(archive.virtual))
        located = self._existing_dir(target_dir, writable=True)
        if not located.ok:
            return located
        folder = located.unwrap()

        report = UploadReport()
        try:
            with self.storage.open_entry(archive.path) as handle, zipfile.ZipFile(handle) as zf:
                for info in zf.infolist():
                    try:
                        extracted = self._extract_member(zf, info, folder)
                    except OSError as exc:
                        logger.warning('Unable to extract member %s: %s', info.filename, exc)
                        extracted = err(ErrorKind.IO_ERROR, info.filename)
                    if extracted is None:
                        continue
                    if extracted.ok:
                        report.entries.append(extracted.unwrap())
                    else:
                        report.errors.append(ItemError(info.filename, extracted.error))
        except (zipfile.BadZipFile, OSError) as exc:
            logger.warning('Unable to extract %s: %s', archive.path, exc)
            return err(ErrorKind.IO_ERROR, archive_path)
        if report.errors and not report.entries:
            return fail(report.errors[0].error)
        return ok(report)

    def _extract_member(self, zf: zipfile.ZipFile, info: zipfile.ZipInfo, folder: _Located) -> Result[EntryDescriptor] | None:
        normalized = self.storage.normalize_path(folder.virtual + info.filename)
        if not normalized.ok:
            return err(ErrorKind.INVALID_PATH, info.filename)
        member_virtual = self._canonical(normalized.unwrap(), info.is_dir())
        relative = member_virtual[len(folder.virtual):].strip('/')
        if not relative:
            return None
        segments = relative.split('/')
        for segment in segments[:-1]:
            if error := self.policy.check_restrictions(segment, True):
                return fail(error)
        if error := self.policy.check_restrictions(segments[-1], info.is_dir()):
            return fail(error)
        if not info.is_dir() and info.file_size > self.config.upload_file_size_limit:
            return err(ErrorKind.UPLOAD_FILE_TOO_BIG, info.filename)

        resolved = self.storage.resolve_path(member_virtual)
        if not resolved.ok:
            return resolved
        target = resolved.unwrap()
        if info.is_dir():
            if self.storage.exists(target) and self.storage.is_dir(target):
                return None
            self.storage.make_dir(target, parents=True)
            return self.metadata.describe(member_virtual)

        if error := self._already_exists(target, member_virtual):
            return fail(error)
        if not self.storage.exists(target.parent):
            self.storage.make_dir(target.parent, parents=True)
        with zf.open(info) as member:
            self.storage.write_entry(target, member)
        return self.metadata.describe(member_virtual)
