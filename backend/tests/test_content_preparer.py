"""
Tests for content preparation (email + attachments -> PreparedContent).
Most tests mock pdfplumber; TestRealPdf parses a small generated PDF.
"""

import base64
from unittest.mock import MagicMock

import pytest

from app.models.inbound_email import InboundAttachment
from app.services.content_preparer import extract_text_from_pdf_bytes, prepare_content
from conftest import make_attachment, make_email


def _mock_pdf(mocker, page_texts):
    pages = [MagicMock(**{"extract_text.return_value": t}) for t in page_texts]
    pdf = MagicMock()
    pdf.pages = pages
    pdf.__enter__.return_value = pdf
    pdf.__exit__.return_value = False
    return mocker.patch("app.services.content_preparer.pdfplumber.open", return_value=pdf)


def _build_pdf(page_texts: list[str]) -> bytes:
    """Minimal PDF with one Helvetica text line per page."""
    font_num = 3
    objects = {
        1: b"<< /Type /Catalog /Pages 2 0 R >>",
        font_num: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    }
    kids = []
    next_num = 4
    for text in page_texts:
        page_num, content_num = next_num, next_num + 1
        next_num += 2
        stream = f"BT /F1 24 Tf 72 720 Td ({text}) Tj ET".encode()
        objects[content_num] = (
            b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream"
        )
        objects[page_num] = (
            b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            b"/Resources << /Font << /F1 %d 0 R >> >> /Contents %d 0 R >>" % (font_num, content_num)
        )
        kids.append(b"%d 0 R" % page_num)
    objects[2] = b"<< /Type /Pages /Kids [" + b" ".join(kids) + b"] /Count %d >>" % len(kids)

    out = bytearray(b"%PDF-1.4\n")
    offsets = {}
    for num in sorted(objects):
        offsets[num] = len(out)
        out += b"%d 0 obj\n" % num + objects[num] + b"\nendobj\n"
    xref_at = len(out)
    size = max(objects) + 1
    out += b"xref\n0 %d\n" % size
    out += b"0000000000 65535 f \n"
    for num in range(1, size):
        out += b"%010d 00000 n \n" % offsets[num]
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (size, xref_at)
    return bytes(out)


class TestPrepareContent:

    def test_empty_email_yields_empty_content(self):
        content = prepare_content(make_email(text_body=None))
        assert content.text == ""
        assert content.images == []

    def test_plain_text_body_is_kept(self):
        content = prepare_content(make_email(text_body="Dinner at 7pm"))
        assert content.text == "Dinner at 7pm"

    def test_image_attachment_passes_base64_through_unchanged(self):
        att = make_attachment("ticket.jpg", "image/jpeg", b"\xff\xd8\xff")
        content = prepare_content(make_email(attachments=[att]))

        assert len(content.images) == 1
        assert content.images[0].content_type == "image/jpeg"
        assert content.images[0].data == att.content

    def test_images_keep_receipt_order(self):
        first = make_attachment("a.png", "image/png", b"a")
        second = make_attachment("b.gif", "image/gif", b"b")
        content = prepare_content(make_email(attachments=[first, second]))
        assert [i.content_type for i in content.images] == ["image/png", "image/gif"]

    def test_empty_image_is_skipped(self):
        att = InboundAttachment(filename="blank.png", content_type="image/png", content="")
        assert prepare_content(make_email(attachments=[att])).images == []

    def test_pdf_text_is_appended_with_marker(self, mocker):
        _mock_pdf(mocker, ["Page one", "Page two"])
        att = make_attachment("itinerary.pdf", "application/pdf", b"%PDF-1.4")

        content = prepare_content(make_email(text_body="Body", attachments=[att]))

        assert content.text == (
            "Body\n\n--- PDF attachment: itinerary.pdf ---\nPage one\n\nPage two"
        )

    def test_pdf_failure_degrades_to_marker(self, mocker):
        mocker.patch(
            "app.services.content_preparer.pdfplumber.open",
            side_effect=Exception("broken xref table"),
        )
        att = make_attachment("broken.pdf", "application/pdf", b"garbage")
        image = make_attachment("photo.png", "image/png", b"img")

        content = prepare_content(make_email(text_body="Body", attachments=[att, image]))

        assert "--- Failed to process PDF attachment: broken.pdf ---" in content.text
        assert len(content.images) == 1  # later attachments still processed

    def test_invalid_base64_pdf_degrades_to_marker(self):
        att = InboundAttachment(filename="bad.pdf", content_type="application/pdf", content="!!!not base64!!!")
        content = prepare_content(make_email(text_body="", attachments=[att]))
        assert content.text == "\n\n--- Failed to process PDF attachment: bad.pdf ---"

    def test_other_mime_types_are_ignored(self):
        att = make_attachment("notes.txt", "text/plain", b"hello")
        content = prepare_content(make_email(text_body="Body", attachments=[att]))
        assert content.text == "Body"
        assert content.images == []


class TestExtractTextFromPdfBytes:

    def test_skips_pages_without_text(self, mocker):
        _mock_pdf(mocker, ["First", None, "Third"])
        assert extract_text_from_pdf_bytes(b"%PDF") == "First\n\nThird"

    def test_scanned_pdf_raises(self, mocker):
        _mock_pdf(mocker, [None, ""])
        with pytest.raises(ValueError, match="No text extracted"):
            extract_text_from_pdf_bytes(b"%PDF")


class TestRealPdf:

    def test_pages_in_order_joined_by_blank_line(self):
        pdf = _build_pdf(["Page one", "Page two"])
        assert extract_text_from_pdf_bytes(pdf) == "Page one\n\nPage two"

    def test_pdf_attachment_with_mime_parameters(self):
        att = make_attachment(
            "itinerary.pdf", "application/pdf; name=itinerary.pdf", _build_pdf(["Flight UA123", "Hotel Le Marais"])
        )
        content = prepare_content(make_email(text_body="Body", attachments=[att]))

        assert content.text == (
            "Body\n\n--- PDF attachment: itinerary.pdf ---\nFlight UA123\n\nHotel Le Marais"
        )


class TestMimeParameters:

    def test_pdf_content_type_parameters_are_ignored(self, mocker):
        _mock_pdf(mocker, ["Page one"])
        att = make_attachment("a.pdf", "Application/PDF; name=a.pdf", b"%PDF-1.4")
        content = prepare_content(make_email(text_body="", attachments=[att]))
        assert content.text == "\n\n--- PDF attachment: a.pdf ---\nPage one"

    def test_image_content_type_is_stripped_for_data_url(self):
        att = make_attachment("a.png", "image/png; name=a.png", b"img")
        content = prepare_content(make_email(attachments=[att]))
        assert content.images[0].content_type == "image/png"
