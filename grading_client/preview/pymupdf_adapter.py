import pymupdf

from grading_client.preview.base import BasePreviewRenderer
from grading_client.preview.exceptions import PreviewError


class PyMuPdfRenderer(BasePreviewRenderer):
    """Renders PDF previews using PyMuPDF."""

    def render_first_page(self, pdf_bytes: bytes) -> bytes:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                if doc.page_count == 0:
                    raise PreviewError("PDF has no pages")
                pixmap = doc[0].get_pixmap(dpi=self._dpi)
                return pixmap.tobytes("png")
        except PreviewError:
            raise
        except Exception as exc:
            raise PreviewError(f"pymupdf rendering failed: {exc}") from exc
