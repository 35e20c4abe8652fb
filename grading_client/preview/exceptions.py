class PreviewError(Exception):
    """Raised when a preview image cannot be rendered."""
