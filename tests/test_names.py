from __future__ import annotations

from filemanager.config import load_settings
from filemanager.services.names import is_plain_name, normalize_filename, normalize_name


def test_whitespace_becomes_underscore():
    assert normalize_name('my new folder', load_settings()) == 'my_new_folder'


def test_filename_keeps_extension_dot():
    assert normalize_filename('holiday photo.jpeg', load_settings()) == 'holiday_photo.jpeg'


def test_latin_only_strips_accents_and_symbols():
    config = load_settings({'chars_latin_only': True})

    assert normalize_filename('Café déjà vu!.JPG', config) == 'Cafe_deja_vu.JPG'


def test_default_form_composes_characters():
    assert normalize_filename('e\u0301te\u0301.txt', load_settings()) == '\u00e9t\u00e9.txt'


def test_normalization_can_be_disabled():
    config = load_settings({'normalize_filename': False})

    assert normalize_filename('a b.txt', config) == 'a b.txt'


def test_filename_drops_directory_components():
    config = load_settings()

    assert normalize_filename('../../etc/passwd', config) == 'passwd'
    assert normalize_filename('C:\\Users\\me\\report.pdf', config) == 'report.pdf'


def test_dotfile_without_stem_is_left_intact():
    assert normalize_filename('.profile', load_settings()) == '.profile'


def test_is_plain_name():
    assert is_plain_name('report.pdf')
    assert not is_plain_name('')
    assert not is_plain_name('..')
    assert not is_plain_name('a/b')
