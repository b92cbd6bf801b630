"""
PDF Text Extraction Service

Turns the uploaded declaration PDF into one plain-text transcript that is
sent to the extraction model.

DESIGN DECISION: Only the embedded text layer is read. IRPF declarations
exported by the Receita Federal program always carry one; a PDF without
it is a scan, and is reported as unreadable instead of being sent to OCR.

The document handle is opened in a ``with`` block so it is closed on
every path, including failures halfway through the pages.
"""

import fitz  # PyMuPDF
from pydantic import BaseModel

PAGE_SEPARATOR = "\n\n"


class DocumentReadError(Exception):
    """Base exception for document reading."""
    pass


class UnreadableDocumentError(DocumentReadError):
    """
    The bytes are not a readable PDF, or the PDF has no text layer.
    """

    def __init__(self, message: str, reason: str = "unreadable"):
        self.reason = reason
        super().__init__(message)


class PDFTranscript(BaseModel):
    """Text of a PDF plus the page count it came from."""

    text: str
    page_count: int

    @property
    def char_count(self) -> int:
        return len(self.text)


class PDFTextExtractor:
    """
    Extracts the text layer of a PDF held in memory.

    Pure transformation: the same bytes always give the same transcript.
    """

    def extract(self, file_bytes: bytes) -> PDFTranscript:
        """
        Extract all page texts, page 1 first, joined by a blank line.

        Raises:
            UnreadableDocumentError: not a PDF, encrypted, or no text layer
        """
        if not file_bytes:
            raise UnreadableDocumentError("Empty file", reason="empty")

        try:
            document = fitz.open(stream=file_bytes, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            # fitz.FileDataError is a RuntimeError subclass
            raise UnreadableDocumentError(
                f"File is not a valid PDF: {e}",
                reason="invalid_pdf",
            ) from e

        with document:
            if document.needs_pass:
                raise UnreadableDocumentError(
                    "PDF is password protected",
                    reason="encrypted",
                )

            page_texts = []
            for page in document:
                page_texts.append(page.get_text("text").strip())
            page_count = len(page_texts)

        if not any(page_texts):
            raise UnreadableDocumentError(
                "PDF has no extractable text layer (scanned document?)",
                reason="no_text_layer",
            )

        return PDFTranscript(
            text=PAGE_SEPARATOR.join(page_texts),
            page_count=page_count,
        )

    def extract_text(self, file_bytes: bytes) -> str:
        """Convenience wrapper returning only the transcript text."""
        return self.extract(file_bytes).text
