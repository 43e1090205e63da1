from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from ..schemas import ApiResponse, ErrorOut, render_value
from .errors import ErrorKind, Result, err
from .file_ops import FileOps, UploadReport

logger = logging.getLogger(__name__)

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


class _MissingParameter(Exception):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in _TRUE_VALUES


class Dispatcher:
    """Routes a ``mode`` plus its parameters to the matching engine operation."""

    def __init__(self, ops: FileOps):
        self.ops = ops
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Result[Any]]] = {
            'initiate': lambda params: self.ops.initiate(),
            'getfile': self._get_file,
            'getinfo': self._get_file,
            'getfolder': self._get_folder,
            'addfolder': self._add_folder,
            'move': self._move,
            'rename': self._rename,
            'copy': self._copy,
            'delete': self._delete,
            'getimage': self._get_image,
            'readfile': self._read_file,
            'download': self._download,
            'editfile': self._edit_file,
            'savefile': self._save_file,
            'upload': self._upload,
            'replace': self._replace,
            'extract': self._extract,
            'summarize': lambda params: self.ops.summarize(),
        }

    def handle(self, mode: str | None, params: Mapping[str, Any] | None = None) -> Result[Any]:
        handler = self._handlers.get((mode or '').strip().lower())
        if handler is None:
            return err(ErrorKind.MODE_ERROR, mode or '')
        try:
            return handler(params or {})
        except _MissingParameter as exc:
            return err(ErrorKind.INVALID_PATH, exc.name)
        except Exception:
            logger.exception('Unhandled error while processing mode %s', mode)
            return err(ErrorKind.SERVER_ERROR)

    @staticmethod
    def _required(params: Mapping[str, Any], name: str) -> Any:
        value = params.get(name)
        if value is None or (isinstance(value, (str, list, tuple)) and not value):
            raise _MissingParameter(name)
        return value

    def _get_file(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.get_file(self._required(params, 'path'))

    def _get_folder(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.get_folder(self._required(params, 'path'), params.get('type'))

    def _add_folder(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.add_folder(self._required(params, 'path'), self._required(params, 'name'))

    def _move(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.move(self._required(params, 'old'), self._required(params, 'new'))

    def _rename(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.rename(self._required(params, 'old'), self._required(params, 'new'))

    def _copy(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.copy(self._required(params, 'source'), self._required(params, 'target'))

    def _delete(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.delete(self._required(params, 'path'))

    def _get_image(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.get_image(self._required(params, 'path'), _flag(params.get('thumbnail')))

    def _read_file(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.read_file(self._required(params, 'path'))

    def _download(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.download(self._required(params, 'path'))

    def _edit_file(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.edit_file(self._required(params, 'path'))

    def _save_file(self, params: Mapping[str, Any]) -> Result[Any]:
        content = params.get('content')
        if content is None:
            raise _MissingParameter('content')
        return self.ops.save_file(self._required(params, 'path'), content)

    def _upload(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.upload(self._required(params, 'path'), self._required(params, 'files'))

    def _replace(self, params: Mapping[str, Any]) -> Result[Any]:
        files = self._required(params, 'files')
        return self.ops.replace(self._required(params, 'path'), files[0])

    def _extract(self, params: Mapping[str, Any]) -> Result[Any]:
        return self.ops.extract(self._required(params, 'source'), self._required(params, 'target'))


def envelope(result: Result[Any]) -> dict[str, Any]:
    """Render a result as ``{"data": ...}`` or ``{"errors": [...]}``."""
    if not result.ok:
        response = ApiResponse(errors=[ErrorOut.from_error(result.error)])
        return response.model_dump(mode='json', exclude_none=True)

    errors = None
    if isinstance(result.value, UploadReport) and result.value.errors:
        errors = [ErrorOut.from_item(item) for item in result.value.errors]
    response = ApiResponse(data=render_value(result.value), errors=errors)
    return response.model_dump(mode='json', exclude_none=True)
