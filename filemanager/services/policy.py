from __future__ import annotations

import logging
import re

from ..config import Settings
from .errors import ConfigError, ErrorKind, OpError

logger = logging.getLogger(__name__)


def extension_of(name: str) -> str:
    _, dot, extension = name.rpartition('.')
    return extension.lower() if dot else ''


def _compile(patterns: tuple[str, ...], label: str) -> tuple[re.Pattern[str], ...]:
    compiled: list[re.Pattern[str]] = []
    for raw in patterns:
        try:
            compiled.append(re.compile(raw))
        except re.error as exc:
            logger.error('Invalid %s restriction pattern %r: %s', label, raw, exc)
            raise ConfigError(f'Invalid {label} restriction pattern: {raw!r}') from exc
    return tuple(compiled)


class PolicyEvaluator:
    """Extension and name-pattern allow/deny decisions plus the read-only gate."""

    def __init__(self, config: Settings):
        self.config = config
        self.read_only = config.read_only
        self._extensions = config.extension_set
        self._images = config.image_extension_set
        self._editable = config.editable_extension_set
        self._file_patterns = _compile(config.file_patterns, 'file')
        self._folder_patterns = _compile(config.folder_patterns, 'folder')

    def is_extension_allowed(self, name: str) -> bool:
        listed = extension_of(name) in self._extensions
        return listed if self.config.extensions_policy_allow else not listed

    def is_name_allowed(self, name: str, is_dir: bool) -> bool:
        patterns = self._folder_patterns if is_dir else self._file_patterns
        matched = any(pattern.fullmatch(name) for pattern in patterns)
        return matched if self.config.patterns_policy_allow else not matched

    def is_permitted(self, name: str, is_dir: bool) -> bool:
        if not is_dir and not self.is_extension_allowed(name):
            return False
        return self.is_name_allowed(name, is_dir)

    def is_image(self, name: str) -> bool:
        return extension_of(name) in self._images

    def is_editable(self, name: str) -> bool:
        return extension_of(name) in self._editable

    def check_writable(self) -> OpError | None:
        if self.read_only:
            return OpError(ErrorKind.READ_ONLY)
        return None

    def check_restrictions(self, name: str, is_dir: bool) -> OpError | None:
        if not self.is_permitted(name, is_dir):
            return OpError(ErrorKind.FORBIDDEN_NAME, (name,))
        return None
