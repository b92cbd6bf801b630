"""Tests for PDF text extraction."""

import fitz
import pytest

from triad3.services.pdf import PDFTextExtractor, UnreadableDocumentError

from conftest import make_pdf


@pytest.fixture
def extractor() -> PDFTextExtractor:
    return PDFTextExtractor()


class TestPDFTextExtractor:

    def test_pages_in_order_separated_by_blank_line(self, extractor):
        pdf = make_pdf("Page one text", "Page two text")
        transcript = extractor.extract(pdf)
        assert transcript.page_count == 2
        assert transcript.text == "Page one text\n\nPage two text"

    def test_identical_bytes_give_identical_text(self, extractor):
        """Extraction is deterministic for the same input."""
        pdf = make_pdf("RENDIMENTOS\nACME LTDA 50.000,00", "BENS E DIREITOS")
        assert extractor.extract_text(pdf) == extractor.extract_text(pdf)

    def test_blank_pages_are_kept_as_empty(self, extractor):
        transcript = extractor.extract(make_pdf("First", "", "Third"))
        assert transcript.text == "First\n\n\n\nThird"

    def test_not_a_pdf(self, extractor):
        with pytest.raises(UnreadableDocumentError) as exc_info:
            extractor.extract(b"this is not a pdf")
        assert exc_info.value.reason == "invalid_pdf"

    def test_empty_bytes(self, extractor):
        with pytest.raises(UnreadableDocumentError) as exc_info:
            extractor.extract(b"")
        assert exc_info.value.reason == "empty"

    def test_no_text_layer(self, extractor):
        """A PDF with only blank pages behaves like a scan without OCR."""
        with pytest.raises(UnreadableDocumentError) as exc_info:
            extractor.extract(make_pdf("", ""))
        assert exc_info.value.reason == "no_text_layer"

    def test_encrypted_pdf(self, extractor):
        document = fitz.open()
        document.new_page().insert_text((72, 72), "secret")
        data = document.tobytes(
            encryption=fitz.PDF_ENCRYPT_AES_256,
            owner_pw="owner",
            user_pw="user",
        )
        document.close()

        with pytest.raises(UnreadableDocumentError) as exc_info:
            extractor.extract(data)
        assert exc_info.value.reason == "encrypted"
