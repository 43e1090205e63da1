from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .services.errors import ConfigError


def parse_csv(value: str, *, lower: bool = False) -> tuple[str, ...]:
    items = [item.strip() for item in value.split(',') if item.strip()]
    if lower:
        items = [item.lower() for item in items]
    return tuple(items)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', env_prefix='FM_', frozen=True)

    app_name: str = 'File Manager'
    file_root: str = '/srv/filemanager/userfiles'
    thumbnail_dir: str = '/srv/filemanager/_thumbs'
    read_only: bool = False

    extensions_policy_allow: bool = False
    extensions_restrictions: str = (
        'exe,com,msi,bat,cgi,pl,php,phps,phtml,php3,php4,php5,php6,py,pyc,pyo,pcgi,pcgi3,pcgi4,pcgi5,pchi6'
    )
    patterns_policy_allow: bool = False
    patterns_restrictions_file: str = r'^\..*'
    patterns_restrictions_folder: str = r'^\..*'

    images_extensions: str = 'jpg,jpe,jpeg,gif,png,bmp,webp'
    editable_extensions: str = 'txt,csv,md,json,xml,html,htm,css,js,log,ini,yml,yaml'
    thumbnail_enabled: bool = True
    thumbnail_max_width: int = Field(default=64, ge=1, le=4096)
    thumbnail_max_height: int = Field(default=64, ge=1, le=4096)

    upload_file_size_limit: int = Field(default=16_000_000, gt=0)
    normalize_filename: bool = True
    chars_latin_only: bool = False
    normalization_form: Literal['NFC', 'NFD', 'NFKC', 'NFKD'] = 'NFC'
    allow_folder_download: bool = False

    log_level: str = 'info'
    cors_origins: str = ''

    @property
    def extension_set(self) -> frozenset[str]:
        return frozenset(parse_csv(self.extensions_restrictions, lower=True))

    @property
    def image_extension_set(self) -> frozenset[str]:
        return frozenset(parse_csv(self.images_extensions, lower=True))

    @property
    def editable_extension_set(self) -> frozenset[str]:
        return frozenset(parse_csv(self.editable_extensions, lower=True))

    @property
    def file_patterns(self) -> tuple[str, ...]:
        return parse_csv(self.patterns_restrictions_file)

    @property
    def folder_patterns(self) -> tuple[str, ...]:
        return parse_csv(self.patterns_restrictions_folder)


def load_settings(options: Mapping[str, Any] | None = None) -> Settings:
    """Build a settings snapshot, with ``options`` taking priority over env and defaults."""
    try:
        return Settings(**dict(options or {}))
    except ValidationError as exc:
        fields = ', '.join(str(err['loc'][0]) for err in exc.errors() if err.get('loc'))
        raise ConfigError(f'Invalid file manager configuration: {fields or exc}') from exc


settings = load_settings()
