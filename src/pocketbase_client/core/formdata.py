"""Multipart bodies for record create/update with file fields.

A record body that holds ``FileUpload`` values (or lists of them) is sent as
``multipart/form-data``: every file becomes a part under its field name and
the remaining fields go along as plain form values. Objects and arrays are
collected into a single ``@jsonPayload`` part, which PocketBase merges into
the record data.

Example:
    avatar = FileUpload.from_path("me.png")
    await client.collection("users").update("u1", {"name": "Jane", "avatar": avatar})
"""

import json
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ValidationError

JSON_PAYLOAD_FIELD = "@jsonPayload"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

FilePart = Tuple[str, Tuple[str, bytes, str]]
FormValue = Union[str, List[str]]


def guess_content_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class FileUpload:
    """A file to upload into a record file field."""

    name: str
    content: bytes
    content_type: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValidationError("File upload needs a file name")
        if not isinstance(self.content, (bytes, bytearray)):
            raise ValidationError(
                f"File upload content must be bytes, got {type(self.content).__name__}"
            )
        if self.content_type is None:
            object.__setattr__(self, "content_type", guess_content_type(self.name))

    @classmethod
    def from_path(
        cls, path: Union[str, Path], content_type: Optional[str] = None
    ) -> "FileUpload":
        p = Path(path)
        return cls(p.name, p.read_bytes(), content_type)

    def __repr__(self) -> str:
        return f"FileUpload(name={self.name!r}, size={len(self.content)}, content_type={self.content_type!r})"


@dataclass(frozen=True)
class MultipartBody:
    """Form values and file parts ready for the transport."""

    fields: Dict[str, FormValue] = field(default_factory=dict)
    files: List[FilePart] = field(default_factory=list)


def _is_file_list(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and bool(value) and all(
        isinstance(item, FileUpload) for item in value
    )


def has_files(body: Any) -> bool:
    """True if any top-level field of ``body`` is a file or a list of files."""
    if not isinstance(body, Mapping):
        return False
    return any(
        isinstance(value, FileUpload) or _is_file_list(value) for value in body.values()
    )


def _form_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_multipart(body: Mapping[str, Any]) -> MultipartBody:
    """Split a record body into form values and file parts.

    Raises:
        ValidationError: A list mixes files with other values, or a value
            cannot be JSON encoded
    """
    fields: Dict[str, FormValue] = {}
    files: List[FilePart] = []
    json_payload: Dict[str, Any] = {}

    for key, value in body.items():
        name = str(key)
        if isinstance(value, FileUpload):
            files.append((name, (value.name, bytes(value.content), value.content_type)))
        elif _is_file_list(value):
            for upload in value:
                files.append((name, (upload.name, bytes(upload.content), upload.content_type)))
        elif isinstance(value, (list, tuple)) and any(isinstance(v, FileUpload) for v in value):
            raise ValidationError(f"Field {name!r} mixes files with other values")
        elif isinstance(value, (dict, list, tuple)):
            json_payload[name] = value
        else:
            fields[name] = _form_text(value)

    if json_payload:
        try:
            fields[JSON_PAYLOAD_FIELD] = json.dumps(json_payload)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Form field is not JSON serializable: {e}") from e

    return MultipartBody(fields=fields, files=files)
