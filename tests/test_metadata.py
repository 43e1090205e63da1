from __future__ import annotations

from datetime import timezone

from filemanager.services.errors import ErrorKind


def test_describe_root_uses_root_directory_name(ops, root):
    entry = ops.metadata.describe('/').unwrap()

    assert entry.type == 'folder'
    assert entry.path == '/'
    assert entry.name == root.name
    assert entry.size == 0


def test_describe_image_reads_dimensions(ops, root, make_image):
    make_image(root / 'photo.png', size=(120, 80))

    entry = ops.metadata.describe('/photo.png').unwrap()

    assert entry.type == 'file'
    assert (entry.width, entry.height) == (120, 80)
    assert entry.size == (root / 'photo.png').stat().st_size
    assert entry.readable and entry.writable
    assert entry.modified.tzinfo == timezone.utc


def test_describe_is_idempotent_for_unchanged_entries(ops, root):
    (root / 'notes.txt').write_text('hello')

    assert ops.metadata.describe('/notes.txt').unwrap() == ops.metadata.describe('/notes.txt').unwrap()


def test_describe_undecodable_image_degrades_to_zero_dimensions(ops, root):
    (root / 'broken.png').write_bytes(b'not really a png')
    (root / 'empty.jpg').write_bytes(b'')

    broken = ops.metadata.describe('/broken.png').unwrap()
    empty = ops.metadata.describe('/empty.jpg').unwrap()

    assert (broken.width, broken.height, broken.size) == (0, 0, 16)
    assert (empty.width, empty.height, empty.size) == (0, 0, 0)


def test_describe_missing_entry(ops):
    result = ops.metadata.describe('/nope.txt')

    assert result.error.kind == ErrorKind.NOT_FOUND


def test_describe_rejects_trailing_slash_mismatch(ops, root):
    (root / 'docs').mkdir()
    (root / 'a.txt').write_text('a')

    assert ops.metadata.describe('/docs').error.kind == ErrorKind.INVALID_PATH
    assert ops.metadata.describe('/a.txt/').error.kind == ErrorKind.INVALID_PATH
    assert ops.metadata.describe('/docs/').unwrap().name == 'docs'
