# canteen/uploads.py
from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from .errors import PayloadTooLarge, ValidationFailed

log = logging.getLogger(__name__)

MAX_FILES = 5
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_FIELDS = 16
MAX_FIELD_SIZE = 64 * 1024

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def allowed_mimetype(mimetype: str | None) -> bool:
    mt = (mimetype or "").lower()
    return mt.startswith("image/") or mt in ALLOWED_MIME_TYPES


def max_request_bytes() -> int:
    # room for the form fields and multipart boundaries on top of the files
    return MAX_FILES * MAX_FILE_SIZE + MAX_FIELDS * MAX_FIELD_SIZE


def _unique_name(original: str) -> str:
    ext = Path(original or "").suffix.lower()
    return f"xerox-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


def _open_part(path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    return path.open("wb")


class _Part:
    def __init__(self, name: str) -> None:
        self.name = name
        self.data = bytearray()
        self.handle = None
        self.stored: Optional[Dict[str, Any]] = None
        self.skip = False


class XeroxUploadReader:
    """
    Incremental reader for the xerox multipart form.

    File parts are checked when their headers arrive and written straight to
    ``<upload_dir>/xerox`` as their bytes come in, so a file over the size
    ceiling is cut off mid-stream rather than after the body is buffered.
    Plain fields are collected into ``fields``.
    """

    def __init__(self, content_type: str | None, upload_dir: str | Path) -> None:
        mimetype, params = parse_options_header(content_type or "")
        if mimetype != b"multipart/form-data" or b"boundary" not in params:
            raise ValidationFailed("Expected a multipart/form-data body")

        self.dest_dir = Path(upload_dir) / "xerox"
        self.fields: Dict[str, str] = {}
        self.stored: List[Dict[str, Any]] = []
        self.file_count = 0

        self._events: List[Tuple[str, Any]] = []
        self._headers: Dict[bytes, bytes] = {}
        self._header_name = b""
        self._header_value = b""
        self._part: Optional[_Part] = None
        self._ended = False

        self._parser = MultipartParser(
            params[b"boundary"],
            {
                "on_part_begin": self._on_part_begin,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_end": self._on_end,
            },
        )

    # parser callbacks only record what happened; disk work runs in feed()
    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_name.lower()] = self._header_value
        self._header_name = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        self._events.append(("headers", self._headers))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", data[start:end]))

    def _on_part_end(self) -> None:
        self._events.append(("end", None))

    def _on_end(self) -> None:
        self._ended = True

    async def feed(self, chunk: bytes) -> None:
        try:
            self._parser.write(chunk)
        except MultipartParseError as e:
            raise ValidationFailed("Malformed multipart body") from e

        events, self._events = self._events, []
        for kind, value in events:
            if kind == "headers":
                await self._start_part(value)
            elif kind == "data":
                await self._part_data(value)
            else:
                await self._end_part()

    def close(self) -> None:
        self._parser.finalize()
        if not self._ended:
            raise ValidationFailed("Incomplete multipart body")
        if not self.stored:
            raise ValidationFailed("At least one file is required")

    def abort(self) -> None:
        """Remove every file this request wrote, including one cut off mid-write."""
        part, self._part = self._part, None
        if part is not None and part.handle is not None:
            part.handle.close()
            Path(part.stored["path"]).unlink(missing_ok=True)
        discard(self.stored)
        self.stored = []

    async def _start_part(self, headers: Dict[bytes, bytes]) -> None:
        _disposition, options = parse_options_header(headers.get(b"content-disposition", b""))
        part = _Part(options.get(b"name", b"").decode("utf-8", "replace"))
        self._part = part

        if b"filename" not in options:
            if len(self.fields) >= MAX_FIELDS:
                raise ValidationFailed("Too many form fields")
            return

        original = options[b"filename"].decode("utf-8", "replace")
        if not original:
            # an empty file input
            part.skip = True
            return

        self.file_count += 1
        if self.file_count > MAX_FILES:
            raise ValidationFailed(f"At most {MAX_FILES} files can be uploaded at once")
        mimetype = headers.get(b"content-type", b"").decode("latin-1").strip()
        if not allowed_mimetype(mimetype):
            raise ValidationFailed("Invalid file type. Only images, PDF, DOC, and DOCX files are allowed.")

        filename = _unique_name(original)
        path = self.dest_dir / filename
        part.stored = {
            "filename": filename,
            "original_name": original,
            "path": str(path),
            "size": 0,
            "mimetype": mimetype,
        }
        part.handle = await run_in_threadpool(_open_part, path)

    async def _part_data(self, chunk: bytes) -> None:
        part = self._part
        if part is None or part.skip:
            return

        if part.handle is None:
            part.data += chunk
            if len(part.data) > MAX_FIELD_SIZE:
                raise ValidationFailed(f"Form field {part.name} is too large")
            return

        size = part.stored["size"] + len(chunk)
        if size > MAX_FILE_SIZE:
            raise PayloadTooLarge(f"File {part.stored['original_name']} exceeds the 10MB limit")
        await run_in_threadpool(part.handle.write, chunk)
        part.stored["size"] = size

    async def _end_part(self) -> None:
        part, self._part = self._part, None
        if part is None or part.skip:
            return

        if part.handle is None:
            self.fields[part.name] = part.data.decode("utf-8", "replace")
            return

        await run_in_threadpool(part.handle.close)
        part.handle = None
        self.stored.append(part.stored)


async def receive_xerox_form(
    request: Request, upload_dir: str | Path
) -> Tuple[Dict[str, str], List[Dict[str, Any]]]:
    """
    Stream a xerox upload request to disk.

    Returns the plain form fields and the stored file records. Either every
    file is kept or none is: a failure part way through removes whatever
    this request already wrote.
    """
    reader = XeroxUploadReader(request.headers.get("content-type"), upload_dir)
    try:
        async for chunk in request.stream():
            await reader.feed(chunk)
        reader.close()
    except Exception:
        await run_in_threadpool(reader.abort)
        raise
    return reader.fields, reader.stored


def discard(stored: List[Dict[str, Any]]) -> None:
    for s in stored:
        try:
            Path(s["path"]).unlink(missing_ok=True)
        except OSError:
            log.warning("could not remove upload %s", s.get("path"))
