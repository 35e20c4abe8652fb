import io

import pdfplumber

from grading_client.preview.base import BasePreviewRenderer
from grading_client.preview.exceptions import PreviewError


class PdfPlumberRenderer(BasePreviewRenderer):
    """Renders PDF previews using pdfplumber."""

    def render_first_page(self, pdf_bytes: bytes) -> bytes:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                if not pdf.pages:
                    raise PreviewError("PDF has no pages")
                image = pdf.pages[0].to_image(resolution=self._dpi)
                buf = io.BytesIO()
                image.save(buf, format="PNG")
            return buf.getvalue()
        except PreviewError:
            raise
        except Exception as exc:
            raise PreviewError(f"pdfplumber rendering failed: {exc}") from exc
