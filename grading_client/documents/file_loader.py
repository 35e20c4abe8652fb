import base64
import binascii
import mimetypes
from dataclasses import replace
from pathlib import Path

from grading_client.documents.models import UploadedDocument
from grading_client.logging.logger import Log
from grading_client.preview.base import BasePreviewRenderer
from grading_client.preview.exceptions import PreviewError

DEFAULT_MIME_TYPE = "application/octet-stream"


def to_data_uri(content: bytes, mime_type: str) -> str:
    """Encode bytes as a ``data:`` URI."""
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


def decode_data_uri(uri: str) -> bytes:
    """Return the bytes of a base64 ``data:`` URI.

    Raises:
        ValueError: if ``uri`` is not a base64 data URI.
    """
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Expected a base64 data URI")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or DEFAULT_MIME_TYPE


class FileLoader:
    """Reads a test paper from disk into an UploadedDocument.

    The file is passed through as-is; only the preview depends on its type.
    """

    def __init__(self, preview_renderer: BasePreviewRenderer | None = None) -> None:
        self._preview_renderer = preview_renderer

    def load(self, path: Path, with_preview: bool = True) -> UploadedDocument:
        """Read document bytes from disk, optionally attaching a preview.

        Raises:
            FileNotFoundError: if the file does not exist.
        """
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        content = path.read_bytes()
        document = UploadedDocument(
            filename=path.name,
            content=content,
            mime_type=guess_mime_type(path),
        )
        Log.info(f"Loaded {len(content)} bytes from {path.name}", mime_type=document.mime_type)
        if with_preview:
            document = replace(document, preview=self._build_preview(document))
        return document

    def _build_preview(self, document: UploadedDocument) -> str | None:
        if document.mime_type.startswith("image/"):
            return to_data_uri(document.content, document.mime_type)
        if document.is_pdf and self._preview_renderer is not None:
            try:
                png = self._preview_renderer.render_first_page(document.content)
            except PreviewError as exc:
                Log.warning(f"No preview for {document.filename}: {exc}")
                return None
            return to_data_uri(png, "image/png")
        return None
