from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .services.errors import OpError
from .services.file_ops import EditableFile, InitiateData, ItemError, Summary, UploadReport
from .services.metadata import EntryDescriptor


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EntryAttributes(CamelModel):
    name: str
    path: str
    readable: bool
    writable: bool
    created: datetime
    modified: datetime
    timestamp: int
    size: int
    width: int
    height: int
    content: Optional[str] = None


class EntryOut(CamelModel):
    id: str
    type: str
    attributes: EntryAttributes

    @classmethod
    def from_descriptor(cls, entry: EntryDescriptor, content: str | None = None) -> 'EntryOut':
        return cls(
            id=entry.id,
            type=entry.type,
            attributes=EntryAttributes(
                name=entry.name,
                path=entry.path,
                readable=entry.readable,
                writable=entry.writable,
                created=entry.created,
                modified=entry.modified,
                timestamp=int(entry.modified.timestamp() * 1000),
                size=entry.size,
                width=entry.width,
                height=entry.height,
                content=content,
            ),
        )


class ExtensionsConfig(CamelModel):
    policy: str
    restrictions: list[str]


class SecurityConfig(CamelModel):
    read_only: bool
    extensions: ExtensionsConfig


class UploadConfig(CamelModel):
    file_size_limit: int


class ClientConfig(CamelModel):
    security: SecurityConfig
    upload: UploadConfig


class InitiateAttributes(CamelModel):
    config: ClientConfig


class InitiateOut(CamelModel):
    id: str = '/'
    type: str = 'initiate'
    attributes: InitiateAttributes

    @classmethod
    def from_data(cls, data: InitiateData) -> 'InitiateOut':
        extensions = ExtensionsConfig(
            policy='ALLOW_LIST' if data.extensions_allow_list else 'DISALLOW_LIST',
            restrictions=list(data.extensions),
        )
        config = ClientConfig(
            security=SecurityConfig(read_only=data.read_only, extensions=extensions),
            upload=UploadConfig(file_size_limit=data.upload_size_limit),
        )
        return cls(attributes=InitiateAttributes(config=config))


class SummaryAttributes(CamelModel):
    files: int
    folders: int
    size: int


class SummaryOut(CamelModel):
    id: str = '/'
    type: str = 'summary'
    attributes: SummaryAttributes


class ErrorOut(CamelModel):
    code: str
    arguments: list[str] = Field(default_factory=list)

    @classmethod
    def from_error(cls, error: OpError) -> 'ErrorOut':
        return cls(code=error.kind.value, arguments=list(error.arguments))

    @classmethod
    def from_item(cls, item: ItemError) -> 'ErrorOut':
        arguments = list(item.error.arguments) or [item.filename]
        return cls(code=item.error.kind.value, arguments=arguments)


class ApiResponse(CamelModel):
    data: Optional[Any] = None
    errors: Optional[list[ErrorOut]] = None


def render_value(value: Any) -> Any:
    """Convert an engine result value into JSON-ready data."""
    if isinstance(value, EntryDescriptor):
        return EntryOut.from_descriptor(value).model_dump(mode='json', by_alias=True, exclude_none=True)
    if isinstance(value, EditableFile):
        entry = EntryOut.from_descriptor(value.entry, content=value.content)
        return entry.model_dump(mode='json', by_alias=True, exclude_none=True)
    if isinstance(value, UploadReport):
        return [render_value(entry) for entry in value.entries]
    if isinstance(value, InitiateData):
        return InitiateOut.from_data(value).model_dump(mode='json', by_alias=True)
    if isinstance(value, Summary):
        attributes = SummaryAttributes(files=value.files, folders=value.folders, size=value.size)
        return SummaryOut(attributes=attributes).model_dump(mode='json', by_alias=True)
    if isinstance(value, list):
        return [render_value(item) for item in value]
    return value
