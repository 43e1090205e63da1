"""Error kinds and the Result value returned by every engine operation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar('T')


class ConfigError(ValueError):
    """Raised when the configuration cannot be turned into a working policy."""


class InitializationError(RuntimeError):
    """Raised when the document root or thumbnail root cannot be prepared."""


class ErrorKind(str, Enum):
    INVALID_PATH = 'INVALID_PATH'
    NOT_FOUND = 'NOT_FOUND'
    FORBIDDEN_DIRECTORY_ACTION = 'FORBIDDEN_ACTION_DIR'
    INVALID_FILE_TYPE = 'INVALID_FILE_TYPE'
    FORBIDDEN_NAME = 'FORBIDDEN_NAME'
    READ_ONLY = 'NOT_ALLOWED'
    PERMISSION_DENIED = 'NOT_ALLOWED_SYSTEM'
    DIRECTORY_ALREADY_EXISTS = 'DIRECTORY_ALREADY_EXISTS'
    FILE_ALREADY_EXISTS = 'FILE_ALREADY_EXISTS'
    FILE_EMPTY = 'FILE_EMPTY'
    UPLOAD_FILE_TOO_BIG = 'UPLOAD_FILE_TOO_BIG'
    IO_ERROR = 'IO_ERROR'
    UNABLE_TO_CREATE_DIRECTORY = 'UNABLE_TO_CREATE_DIRECTORY'
    ERROR_MOVING_DIRECTORY = 'ERROR_MOVING_DIRECTORY'
    ERROR_MOVING_FILE = 'ERROR_MOVING_FILE'
    ERROR_RENAMING_DIRECTORY = 'ERROR_RENAMING_DIRECTORY'
    ERROR_RENAMING_FILE = 'ERROR_RENAMING_FILE'
    ERROR_COPYING_DIRECTORY = 'ERROR_COPYING_DIRECTORY'
    ERROR_COPYING_FILE = 'ERROR_COPYING_FILE'
    DIRECTORY_EMPTY = 'DIRECTORY_EMPTY'
    MODE_ERROR = 'MODE_ERROR'
    SERVER_ERROR = 'ERROR_SERVER'


@dataclass(frozen=True)
class OpError:
    kind: ErrorKind
    arguments: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {'code': self.kind.value, 'arguments': list(self.arguments)}


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    value: T | None = None
    error: OpError | None = None

    def unwrap(self) -> T:
        if not self.ok:
            raise ValueError(f'Result holds an error: {self.error}')
        return self.value  # type: ignore[return-value]


def ok(value: T) -> Result[T]:
    return Result(ok=True, value=value)


def err(kind: ErrorKind, *arguments: object) -> Result[Any]:
    return Result(ok=False, error=OpError(kind, tuple(str(arg) for arg in arguments)))


def fail(error: OpError) -> Result[Any]:
    return Result(ok=False, error=error)
