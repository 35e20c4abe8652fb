from grading_client.config.settings import Settings
from grading_client.preview.base import BasePreviewRenderer
from grading_client.preview.pdfplumber_adapter import PdfPlumberRenderer
from grading_client.preview.pymupdf_adapter import PyMuPdfRenderer


class PreviewRendererFactory:
    """Creates the PDF preview renderer selected in settings."""

    ADAPTERS: dict[str, type[BasePreviewRenderer]] = {
        "pymupdf": PyMuPdfRenderer,
        "pdfplumber": PdfPlumberRenderer,
    }

    @classmethod
    def create(cls, settings: Settings) -> BasePreviewRenderer:
        engine = settings.preview_engine.lower()
        adapter_cls = cls.ADAPTERS.get(engine)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown preview engine '{engine}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls(dpi=settings.preview_dpi)
