from dataclasses import dataclass


@dataclass(frozen=True)
class UploadedDocument:
    """A scanned test paper selected for extraction."""

    filename: str
    content: bytes
    mime_type: str
    preview: str | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"
