from abc import ABC, abstractmethod


class BasePreviewRenderer(ABC):
    """Contract for adapters that render a PDF page to an image."""

    def __init__(self, dpi: int = 72) -> None:
        self._dpi = dpi

    @abstractmethod
    def render_first_page(self, pdf_bytes: bytes) -> bytes:
        """Render page 1 of a PDF.

        Args:
            pdf_bytes: Raw PDF file content.

        Returns:
            PNG image bytes.

        Raises:
            PreviewError: if rendering fails for any reason.
        """
