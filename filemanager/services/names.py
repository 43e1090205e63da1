from __future__ import annotations

import re
import unicodedata
from pathlib import PurePosixPath

from ..config import Settings

_NON_LATIN = re.compile(r'[^\w-]', re.ASCII)
_WHITESPACE = re.compile(r'\s')


def normalize_name(name: str, config: Settings) -> str:
    if not config.normalize_filename:
        return name

    underscored = _WHITESPACE.sub('_', name)
    if config.chars_latin_only:
        # decompose first so accented letters keep their base character
        return _NON_LATIN.sub('', unicodedata.normalize('NFKD', underscored))
    return unicodedata.normalize(config.normalization_form, underscored)


def normalize_filename(name: str, config: Settings) -> str:
    """Normalize the stem and extension of ``name`` separately so the dot survives."""
    base = PurePosixPath(name.replace('\\', '/')).name
    stem, dot, extension = base.rpartition('.')
    if not dot or not stem:
        return normalize_name(base, config)
    return f'{normalize_name(stem, config)}.{normalize_name(extension, config)}'


def is_plain_name(name: str) -> bool:
    return bool(name) and name not in ('.', '..') and '/' not in name and '\\' not in name and '\x00' not in name
