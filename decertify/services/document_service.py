"""Embed a verification QR code into a certificate PDF.

The code is drawn on the first page, bottom-right, as a square whose side
is ``sqrt(QR_AREA_FRACTION * page area)`` points, inset QR_MARGIN_PT from
both edges.  The function is pure: the input buffer is never touched and
the same (document, payload) pair always produces the same bytes, because
the QR encoder runs with a fixed version-fit, mask search and error level,
Pillow's PNG writer is deterministic, and the PDF is written without a
fresh trailer /ID.
"""

from __future__ import annotations

import io
import logging
import math

import fitz  # PyMuPDF
import qrcode
from qrcode.exceptions import DataOverflowError

from decertify.services.errors import EncodingError, MalformedDocument

logger = logging.getLogger(__name__)

QR_AREA_FRACTION = 0.02  # ~100pt square on A4
QR_MARGIN_PT = 30.0
QR_ERROR_CORRECTION = qrcode.constants.ERROR_CORRECT_H
QR_BOX_SIZE = 4
QR_BORDER = 4


def render_code(payload: str) -> bytes:
    """Encode *payload* as a QR code and return it as PNG bytes.

    Raises EncodingError if the payload is empty or does not fit in a
    version-40 symbol at error-correction level H.
    """
    if not payload:
        raise EncodingError("verification payload must be non-empty")

    qr = qrcode.QRCode(
        version=None,
        error_correction=QR_ERROR_CORRECTION,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER,
    )
    qr.add_data(payload)
    try:
        qr.make(fit=True)
    except DataOverflowError:
        raise EncodingError(
            f"payload of {len(payload.encode())} bytes exceeds QR capacity "
            "at error-correction level H"
        ) from None

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def code_rect(page_rect: fitz.Rect) -> fitz.Rect:
    """Where the code goes on a page of the given size."""
    side = math.sqrt(page_rect.width * page_rect.height * QR_AREA_FRACTION)
    side = min(
        side,
        page_rect.width - 2 * QR_MARGIN_PT,
        page_rect.height - 2 * QR_MARGIN_PT,
    )
    if side <= 0:
        raise MalformedDocument(
            f"first page ({page_rect.width:.0f}x{page_rect.height:.0f}pt) "
            "is too small to hold a verification code"
        )
    x1 = page_rect.x1 - QR_MARGIN_PT
    y1 = page_rect.y1 - QR_MARGIN_PT
    return fitz.Rect(x1 - side, y1 - side, x1, y1)


def embed_verification_code(document: bytes, payload: str) -> bytes:
    """Return a new PDF: *document* with *payload* as a QR code on page 1.

    Raises:
        MalformedDocument: the bytes are not a readable, unencrypted PDF
            with at least one page.
        EncodingError: the payload cannot be encoded.
    """
    # Encode first: a bad payload should fail before any PDF parsing work.
    png = render_code(payload)

    if not document:
        raise MalformedDocument("document is empty")

    try:
        doc = fitz.open(stream=bytes(document), filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as exc:
        raise MalformedDocument(f"document is not a readable PDF: {exc}") from None

    try:
        if doc.needs_pass:
            raise MalformedDocument("document is encrypted")
        if doc.page_count == 0:
            raise MalformedDocument("document has no pages")

        page = doc[0]
        rect = code_rect(page.rect)
        page.insert_image(rect, stream=png, keep_proportion=True, overlay=True)
        out = doc.tobytes(garbage=3, deflate=True, no_new_id=True)
    except RuntimeError as exc:
        raise MalformedDocument(f"document could not be rewritten: {exc}") from None
    finally:
        doc.close()

    logger.debug(
        "Embedded verification code  payload_len=%d in=%dB out=%dB rect=%s",
        len(payload),
        len(document),
        len(out),
        tuple(round(v, 1) for v in rect),
    )
    return out
