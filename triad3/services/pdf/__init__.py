"""PDF text extraction service."""

from triad3.services.pdf.text_extractor import (
    DocumentReadError,
    PDFTextExtractor,
    PDFTranscript,
    UnreadableDocumentError,
)

__all__ = [
    "DocumentReadError",
    "PDFTextExtractor",
    "PDFTranscript",
    "UnreadableDocumentError",
]
