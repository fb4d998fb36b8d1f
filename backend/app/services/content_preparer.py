"""
Content preparation for event extraction.

Turns an InboundEmail into PreparedContent: the plain-text body plus any
text pulled out of PDF attachments, and the image attachments that go to the
model as inline images. One broken attachment never fails the whole email;
it is replaced by a marker line in the text.
"""

import base64
import binascii
import io
import logging

import pdfplumber

from app.models.event_record import InlineImage, PreparedContent
from app.models.inbound_email import InboundEmail

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def extract_text_from_pdf_bytes(pdf_bytes: bytes) -> str:
    """
    Extract text from an in-memory PDF using pdfplumber.

    Page order is preserved and pages are joined by a blank line.
    Does NOT support scanned PDFs (no OCR).
    """
    pages: list[str] = []

    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                pages.append(page_text)

    full_text = "\n\n".join(pages)

    if not full_text.strip():
        raise ValueError(
            "No text extracted from PDF. "
            "The PDF may be scanned/image-based (OCR not supported)."
        )

    return full_text


def _decode_base64(content: str) -> bytes:
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Attachment is not valid base64: {e}") from e


def prepare_content(email: InboundEmail) -> PreparedContent:
    """
    Build model-ready content from an inbound email.

    - image/*           -> inline image, base64 payload passed through untouched
    - application/pdf   -> decoded, page text appended under a provenance marker
    - anything else     -> ignored
    """
    text = email.text_body or ""
    images: list[InlineImage] = []

    for attachment in email.attachments:
        # "application/pdf; name=x.pdf" -> "application/pdf"
        content_type = (attachment.content_type or "").split(";")[0].strip().lower()

        if content_type.startswith("image/"):
            if not attachment.content:
                logger.warning(f"Skipping empty image attachment {attachment.filename!r}")
                continue
            images.append(
                InlineImage(content_type=content_type, data=attachment.content)
            )
            logger.info(f"Prepared image attachment for extraction: {attachment.filename}")

        elif content_type == PDF_CONTENT_TYPE:
            try:
                pdf_text = extract_text_from_pdf_bytes(_decode_base64(attachment.content))
            except Exception as e:
                logger.warning(f"Failed to process PDF attachment {attachment.filename!r}: {e}")
                text += f"\n\n--- Failed to process PDF attachment: {attachment.filename} ---"
                continue
            text += f"\n\n--- PDF attachment: {attachment.filename} ---\n{pdf_text}"
            logger.info(f"Extracted text from PDF attachment: {attachment.filename}")

    return PreparedContent(text=text, images=images)
