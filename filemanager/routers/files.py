from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse, Response

from ..deps import get_dispatcher
from ..services.dispatch import Dispatcher, envelope
from ..services.errors import Result
from ..services.file_ops import BytesPayload, FilePayload, UploadItem

router = APIRouter(prefix='/api/filemanager', tags=['filemanager'])

_INLINE_MODES = {'getimage', 'readfile'}


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def to_upload_item(upload: UploadFile) -> UploadItem:
    return UploadItem(filename=upload.filename or '', stream=upload.file, size=_upload_size(upload))


def render(mode: str, result: Result[Any]) -> Response:
    disposition = 'inline' if mode.lower() in _INLINE_MODES else 'attachment'
    if result.ok and isinstance(result.value, FilePayload):
        payload = result.value
        return FileResponse(
            payload.path,
            filename=payload.filename,
            media_type=payload.media_type,
            content_disposition_type=disposition,
        )
    if result.ok and isinstance(result.value, BytesPayload):
        payload = result.value
        headers = {'Content-Disposition': f'{disposition}; filename="{payload.filename}"'}
        return Response(payload.content, media_type=payload.media_type, headers=headers)
    return JSONResponse(envelope(result))


@router.get('')
def handle_get(request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)):
    params = dict(request.query_params)
    mode = params.pop('mode', '')
    return render(mode, dispatcher.handle(mode, params))


@router.post('')
async def handle_post(
    mode: str = Form(...),
    path: Optional[str] = Form(default=None),
    name: Optional[str] = Form(default=None),
    old: Optional[str] = Form(default=None),
    new: Optional[str] = Form(default=None),
    source: Optional[str] = Form(default=None),
    target: Optional[str] = Form(default=None),
    content: Optional[str] = Form(default=None),
    files: list[UploadFile] = File(default=[]),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    params = {
        'path': path,
        'name': name,
        'old': old,
        'new': new,
        'source': source,
        'target': target,
        'content': content,
        'files': [to_upload_item(upload) for upload in files],
    }
    try:
        result = await run_in_threadpool(dispatcher.handle, mode, params)
    finally:
        for upload in files:
            await upload.close()
    return render(mode, result)
