from __future__ import annotations

import io
import zipfile
from collections import Counter
from pathlib import Path

from PIL import Image

from filemanager.services.errors import ErrorKind
from filemanager.services.file_ops import BytesPayload, FilePayload, FileOps
from filemanager.services.storage import LocalStorage


def _png_bytes(size=(30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', size, (10, 120, 10)).save(buffer, format='PNG')
    return buffer.getvalue()


def _zip(path, members: dict[str, bytes]):
    with zipfile.ZipFile(path, 'w') as zf:
        for name, content in members.items():
            zf.writestr(name, content)


def test_upload_empty_file_is_rejected(ops, root, upload_item):
    result = ops.upload('/', [upload_item('empty.txt', b'')])

    assert result.error.kind == ErrorKind.FILE_EMPTY
    assert result.error.arguments == ('empty.txt',)
    assert not (root / 'empty.txt').exists()


def test_upload_writes_normalized_filename(ops, root, upload_item):
    (root / 'docs').mkdir()

    report = ops.upload('/docs/', [upload_item('my report.txt', b'quarterly')]).unwrap()

    assert [entry.path for entry in report.entries] == ['/docs/my_report.txt']
    assert report.errors == []
    assert (root / 'docs' / 'my_report.txt').read_bytes() == b'quarterly'


def test_upload_strips_client_directories(ops, root, upload_item, tmp_path):
    report = ops.upload('/', [upload_item('../../escape.txt', b'x')]).unwrap()

    assert report.entries[0].path == '/escape.txt'
    assert (root / 'escape.txt').exists()
    assert not (tmp_path / 'escape.txt').exists()


def test_upload_enforces_size_limit(make_ops, upload_item):
    ops = make_ops(upload_file_size_limit=5)

    result = ops.upload('/', [upload_item('big.txt', b'0123456789')])

    assert result.error.kind == ErrorKind.UPLOAD_FILE_TOO_BIG
    assert not (ops.storage.root / 'big.txt').exists()


def test_upload_skips_and_reports_rejected_items(ops, root, upload_item):
    items = [upload_item('good.txt', b'ok'), upload_item('bad.php', b'<?php'), upload_item('empty.txt', b'')]

    report = ops.upload('/', items).unwrap()

    assert [entry.name for entry in report.entries] == ['good.txt']
    assert [(item.filename, item.error.kind) for item in report.errors] == [
        ('bad.php', ErrorKind.FORBIDDEN_NAME),
        ('empty.txt', ErrorKind.FILE_EMPTY),
    ]
    assert sorted(path.name for path in root.iterdir()) == ['good.txt']


def test_upload_overwrite_purges_stale_thumbnail(ops, root, thumbs, make_image, upload_item):
    make_image(root / 'photo.png', size=(200, 200))
    ops.thumbnails.get('/photo.png', create_if_missing=True)

    ops.upload('/', [upload_item('photo.png', _png_bytes())]).unwrap()

    assert not (thumbs / 'photo.png').exists()
    assert ops.get_file('/photo.png').unwrap().width == 30


def test_upload_into_missing_directory(ops, upload_item):
    assert ops.upload('/nope/', [upload_item('a.txt')]).error.kind == ErrorKind.NOT_FOUND


def test_replace_with_new_name_removes_old_file(ops, root, upload_item):
    (root / 'old.txt').write_text('v1')

    entry = ops.replace('/old.txt', upload_item('new.txt', b'v2')).unwrap()

    assert entry.path == '/new.txt'
    assert (root / 'new.txt').read_bytes() == b'v2'
    assert not (root / 'old.txt').exists()


def test_replace_with_same_name_overwrites_in_place(ops, root, thumbs, make_image, upload_item):
    make_image(root / 'photo.png', size=(200, 200))
    ops.thumbnails.get('/photo.png', create_if_missing=True)

    entry = ops.replace('/photo.png', upload_item('photo.png', _png_bytes((10, 20)))).unwrap()

    assert (entry.width, entry.height) == (10, 20)
    assert (root / 'photo.png').exists()
    assert not (thumbs / 'photo.png').exists()


def test_replace_rejections(ops, root, upload_item):
    (root / 'docs').mkdir()
    (root / 'a.txt').write_text('a')

    assert ops.replace('/docs/', upload_item('x.txt')).error.kind == ErrorKind.FORBIDDEN_DIRECTORY_ACTION
    assert ops.replace('/missing.txt', upload_item('x.txt')).error.kind == ErrorKind.NOT_FOUND
    assert ops.replace('/a.txt', upload_item('x.php')).error.kind == ErrorKind.FORBIDDEN_NAME
    assert (root / 'a.txt').read_text() == 'a'


def test_edit_and_save_text_file(ops, root):
    (root / 'notes.txt').write_text('hello')

    edited = ops.edit_file('/notes.txt').unwrap()
    saved = ops.save_file('/notes.txt', 'goodbye').unwrap()

    assert edited.content == 'hello'
    assert edited.entry.name == 'notes.txt'
    assert saved.size == 7
    assert (root / 'notes.txt').read_text() == 'goodbye'
    assert [path.name for path in root.iterdir()] == ['notes.txt']


def test_edit_and_save_rejections(ops, root, make_image):
    make_image(root / 'photo.png')
    (root / 'binary.txt').write_bytes(b'\xff\xfe\xfd')

    assert ops.edit_file('/photo.png').error.kind == ErrorKind.INVALID_FILE_TYPE
    assert ops.edit_file('/binary.txt').error.kind == ErrorKind.IO_ERROR
    assert ops.save_file('/photo.png', 'x').error.kind == ErrorKind.INVALID_FILE_TYPE
    assert ops.save_file('/missing.txt', 'x').error.kind == ErrorKind.NOT_FOUND


def test_read_file_returns_payload(ops, root):
    (root / 'notes.txt').write_text('hello')

    payload = ops.read_file('/notes.txt').unwrap()

    assert isinstance(payload, FilePayload)
    assert payload.path == root / 'notes.txt'
    assert payload.filename == 'notes.txt'
    assert payload.media_type == 'text/plain'


def test_get_image_original_and_thumbnail(ops, root, thumbs, make_image):
    make_image(root / 'photo.png')

    original = ops.get_image('/photo.png').unwrap()
    thumbnail = ops.get_image('/photo.png', thumbnail=True).unwrap()

    assert original.path == root / 'photo.png'
    assert thumbnail.path == thumbs / 'photo.png'
    assert thumbnail.media_type == 'image/png'


def test_get_image_renders_in_memory_when_cache_disabled(make_ops, make_image):
    ops = make_ops(thumbnail_enabled=False)
    make_image(ops.storage.root / 'photo.png')

    payload = ops.get_image('/photo.png', thumbnail=True).unwrap()

    assert isinstance(payload, BytesPayload)
    with Image.open(io.BytesIO(payload.content)) as image:
        assert image.size == (64, 32)
    assert not (ops.thumbnails.root / 'photo.png').exists()


def test_get_image_rejections(ops, root):
    (root / 'notes.txt').write_text('x')
    (root / 'broken.png').write_bytes(b'garbage')

    assert ops.get_image('/notes.txt').error.kind == ErrorKind.INVALID_FILE_TYPE
    assert ops.get_image('/broken.png', thumbnail=True).error.kind == ErrorKind.SERVER_ERROR


def test_download_file_and_folder(make_ops):
    ops = make_ops(allow_folder_download=True)
    root = ops.storage.root
    (root / 'docs' / 'sub').mkdir(parents=True)
    (root / 'docs' / 'a.txt').write_text('a')
    (root / 'docs' / 'sub' / 'b.txt').write_text('b')
    (root / 'docs' / '.secret').write_text('s')
    (root / 'empty').mkdir()

    single = ops.download('/docs/a.txt').unwrap()
    archive = ops.download('/docs/').unwrap()

    assert single.filename == 'a.txt'
    assert archive.filename == 'docs.zip'
    assert archive.media_type == 'application/zip'
    with zipfile.ZipFile(io.BytesIO(archive.content)) as zf:
        assert sorted(zf.namelist()) == ['docs/a.txt', 'docs/sub/b.txt']
    assert ops.download('/empty/').error.kind == ErrorKind.DIRECTORY_EMPTY
    assert ops.download('/').error.kind == ErrorKind.FORBIDDEN_DIRECTORY_ACTION


def test_folder_download_disabled_by_default(ops, root):
    (root / 'docs').mkdir()
    (root / 'docs' / 'a.txt').write_text('a')

    assert ops.download('/docs/').error.kind == ErrorKind.FORBIDDEN_DIRECTORY_ACTION


def test_extract_zip_into_directory(ops, root):
    (root / 'out').mkdir()
    _zip(root / 'bundle.zip', {'a.txt': b'a', 'sub/': b'', 'sub/b.txt': b'b'})

    report = ops.extract('/bundle.zip', '/out/').unwrap()

    assert sorted(entry.path for entry in report.entries) == ['/out/a.txt', '/out/sub/', '/out/sub/b.txt']
    assert (root / 'out' / 'sub' / 'b.txt').read_bytes() == b'b'


def test_extract_rejects_members_escaping_target(ops, root, tmp_path):
    (root / 'out').mkdir()
    _zip(root / 'slip.zip', {'../../evil.txt': b'evil', 'ok.txt': b'ok'})

    report = ops.extract('/slip.zip', '/out/').unwrap()

    assert [entry.path for entry in report.entries] == ['/out/ok.txt']
    assert [(item.filename, item.error.kind) for item in report.errors] == [
        ('../../evil.txt', ErrorKind.INVALID_PATH),
    ]
    assert not (tmp_path / 'evil.txt').exists()
    assert not (root / 'evil.txt').exists()


def test_extract_never_overwrites_and_applies_policy(ops, root):
    (root / 'out').mkdir()
    (root / 'out' / 'a.txt').write_text('keep')
    _zip(root / 'bundle.zip', {'a.txt': b'new', 'run.php': b'<?php', 'fresh.txt': b'f'})

    report = ops.extract('/bundle.zip', '/out/').unwrap()

    assert [entry.name for entry in report.entries] == ['fresh.txt']
    assert {item.error.kind for item in report.errors} == {ErrorKind.FILE_ALREADY_EXISTS, ErrorKind.FORBIDDEN_NAME}
    assert (root / 'out' / 'a.txt').read_text() == 'keep'
    assert not (root / 'out' / 'run.php').exists()


def test_extract_rejections(ops, root):
    (root / 'notes.txt').write_text('x')
    (root / 'fake.zip').write_bytes(b'not a zip')

    assert ops.extract('/notes.txt', '/').error.kind == ErrorKind.INVALID_FILE_TYPE
    assert ops.extract('/fake.zip', '/').error.kind == ErrorKind.IO_ERROR
    assert ops.extract('/missing.zip', '/').error.kind == ErrorKind.NOT_FOUND


def test_upload_over_symlink_replaces_the_link(ops, root, upload_item):
    (root / 'real.txt').write_text('original')
    (root / 'link.txt').symlink_to(root / 'real.txt')

    report = ops.upload('/', [upload_item('link.txt', b'uploaded')]).unwrap()

    assert [entry.path for entry in report.entries] == ['/link.txt']
    assert not (root / 'link.txt').is_symlink()
    assert (root / 'link.txt').read_bytes() == b'uploaded'
    assert (root / 'real.txt').read_text() == 'original'


def test_save_file_over_symlink_replaces_the_link(ops, root):
    (root / 'real.txt').write_text('original')
    (root / 'link.txt').symlink_to(root / 'real.txt')

    ops.save_file('/link.txt', 'edited').unwrap()

    assert not (root / 'link.txt').is_symlink()
    assert (root / 'link.txt').read_text() == 'edited'
    assert (root / 'real.txt').read_text() == 'original'


class _RecordingStorage(LocalStorage):
    def __init__(self, root):
        super().__init__(root)
        self.calls = Counter()

    def list_entries(self, path):
        self.calls['list_entries'] += 1
        return super().list_entries(path)

    def stat_entry(self, path):
        self.calls['stat_entry'] += 1
        return super().stat_entry(path)

    def open_entry(self, path):
        self.calls['open_entry'] += 1
        return super().open_entry(path)

    def read_entry(self, path):
        self.calls['read_entry'] += 1
        return super().read_entry(path)

    def make_dir(self, path, parents=False):
        self.calls['make_dir'] += 1
        return super().make_dir(path, parents=parents)


def _recording_ops(make_settings, **options):
    config = make_settings(**options)
    Path(config.file_root).mkdir(parents=True)
    storage = _RecordingStorage(config.file_root)
    return FileOps(config, storage), storage


def test_summarize_and_download_go_through_storage(make_settings):
    ops, storage = _recording_ops(make_settings, allow_folder_download=True)
    (storage.root / 'docs' / 'sub').mkdir(parents=True)
    (storage.root / 'docs' / 'a.txt').write_text('a')
    (storage.root / 'docs' / 'sub' / 'b.txt').write_text('bb')

    summary = ops.summarize().unwrap()
    assert (summary.files, summary.folders, summary.size) == (2, 3, 3)
    assert storage.calls['list_entries'] == 3
    assert storage.calls['stat_entry'] == 2

    archive = ops.download('/docs/').unwrap()
    with zipfile.ZipFile(io.BytesIO(archive.content)) as zf:
        assert zf.read('docs/sub/b.txt') == b'bb'
    assert storage.calls['read_entry'] == 2


def test_extract_and_thumbnails_go_through_storage(make_settings, make_image):
    ops, storage = _recording_ops(make_settings)
    _zip(storage.root / 'bundle.zip', {'deep/er/a.txt': b'a', 'solo/': b''})
    make_image(storage.root / 'photo.png')

    report = ops.extract('/bundle.zip', '/').unwrap()
    assert sorted(entry.path for entry in report.entries) == ['/deep/er/a.txt', '/solo/']
    assert storage.calls['make_dir'] == 3
    assert storage.calls['open_entry'] == 1

    assert ops.thumbnails.get('/photo.png', create_if_missing=True) is not None
    assert storage.calls['read_entry'] == 1
    assert ops.get_file('/photo.png').unwrap().width == 200
    assert storage.calls['open_entry'] == 2
