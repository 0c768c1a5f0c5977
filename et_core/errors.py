class ExtractionError(RuntimeError):
    """The OCR / PDF text engine could not produce text for an input."""
