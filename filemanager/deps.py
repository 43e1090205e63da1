from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from .config import settings
from .services.dispatch import Dispatcher
from .services.file_ops import FileOps


@lru_cache(maxsize=1)
def get_file_ops() -> FileOps:
    return FileOps(settings)


def get_dispatcher(ops: FileOps = Depends(get_file_ops)) -> Dispatcher:
    return Dispatcher(ops)
