
# Signature page compositing using pypdf + reportlab.

from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from typing import List, Optional, Sequence, Tuple

from pypdf import PdfReader, PdfWriter
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .errors import CompositionError
from .logger import get_logger
from .utils import decode_signature_image

logger = get_logger(__name__)

SUPPORTED_TYPES = ("application/pdf",)

MARGIN = 50
TOP_OFFSET = 60
NEW_PAGE_THRESHOLD = 150
FOOTER_Y = 30
MAX_IMAGE_WIDTH = 200
MAX_IMAGE_HEIGHT = 60
FOOTER_TEXT = "This document has been electronically signed and is legally binding."
IMAGE_PLACEHOLDER = "[Signature image unavailable]"


@dataclass
class SignerEntry:
    name: str
    email: str
    signature_data: str
    signed_at: datetime


def supports(content_type: Optional[str]) -> bool:
    return (content_type or "").lower() in SUPPORTED_TYPES


def fit_within(width: float, height: float, max_width: float = MAX_IMAGE_WIDTH, max_height: float = MAX_IMAGE_HEIGHT) -> Tuple[float, float]:
    """Shrink (never enlarge) a width/height pair to fit the box, keeping its aspect ratio."""
    if width <= 0 or height <= 0:
        return 0.0, 0.0
    scale = min(1.0, max_width / width, max_height / height)
    return width * scale, height * scale


def _format_timestamp(value: datetime) -> str:
    return value.strftime("%B %d, %Y %I:%M %p")


class _PageCursor:
    """Tracks the vertical position and starts new pages near the bottom margin."""

    def __init__(self, c: canvas.Canvas, height: float):
        self.c = c
        self.height = height
        self.y = height - TOP_OFFSET
        self.pages = 1

    def ensure_room(self):
        if self.y < NEW_PAGE_THRESHOLD:
            self.finish_page()
            self.pages += 1
            self.y = self.height - TOP_OFFSET

    def finish_page(self):
        self.c.setFont("Helvetica", 8)
        self.c.setFillColorRGB(0.5, 0.5, 0.5)
        self.c.drawString(MARGIN, FOOTER_Y, FOOTER_TEXT)
        self.c.showPage()


def _draw_signature_image(c: canvas.Canvas, entry: SignerEntry, y: float) -> float:
    """Draw the signer's image with its top edge at ``y``; return the height used."""
    image = ImageReader(BytesIO(decode_signature_image(entry.signature_data)))
    width, height = fit_within(*image.getSize())
    c.drawImage(image, MARGIN, y - height, width=width, height=height, mask="auto")
    return height


def render_signature_pages(title: str, signatures: Sequence[SignerEntry], generated_at: datetime) -> bytes:
    buf = BytesIO()
    width, height = letter
    c = canvas.Canvas(buf, pagesize=letter)
    cursor = _PageCursor(c, height)

    c.setFillColorRGB(0, 0, 0)
    c.setFont("Helvetica-Bold", 18)
    c.drawString(MARGIN, cursor.y, "Document Signatures")
    cursor.y -= 30

    c.setFont("Helvetica", 10)
    c.setFillColorRGB(0.3, 0.3, 0.3)
    c.drawString(MARGIN, cursor.y, f"Document: {title}")
    cursor.y -= 20
    c.drawString(MARGIN, cursor.y, f"Completed: {_format_timestamp(generated_at)} UTC")
    cursor.y -= 40

    c.setStrokeColorRGB(0.7, 0.7, 0.7)
    c.setLineWidth(1)
    c.line(MARGIN, cursor.y, width - MARGIN, cursor.y)
    cursor.y -= 30

    c.setFillColorRGB(0, 0, 0)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(MARGIN, cursor.y, "Electronic Signatures:")
    cursor.y -= 30

    for index, entry in enumerate(signatures):
        cursor.ensure_room()

        c.setFillColorRGB(0, 0, 0)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(MARGIN, cursor.y, entry.name)
        cursor.y -= 15

        c.setFont("Helvetica", 10)
        c.setFillColorRGB(0.4, 0.4, 0.4)
        c.drawString(MARGIN, cursor.y, entry.email)
        cursor.y -= 20

        try:
            image_height = _draw_signature_image(c, entry, cursor.y)
            cursor.y -= image_height + 10
        except Exception as exc:
            # a single unreadable image must not abort the page
            logger.warning("signature image could not be embedded", signer=entry.email, error=str(exc))
            c.setFont("Helvetica", 10)
            c.setFillColorRGB(0.5, 0.5, 0.5)
            c.drawString(MARGIN, cursor.y, IMAGE_PLACEHOLDER)
            cursor.y -= 20

        c.setFont("Helvetica", 10)
        c.setFillColorRGB(0.4, 0.4, 0.4)
        c.drawString(MARGIN, cursor.y, f"Signed on: {_format_timestamp(entry.signed_at)} UTC")
        cursor.y -= 35

        if index < len(signatures) - 1:
            c.setStrokeColorRGB(0.8, 0.8, 0.8)
            c.setLineWidth(0.5)
            c.line(MARGIN, cursor.y, width - MARGIN, cursor.y)
            cursor.y -= 25

    cursor.finish_page()
    c.save()
    return buf.getvalue()


def add_signature_page(original_pdf_bytes: bytes, title: str, signatures: List[SignerEntry], generated_at: Optional[datetime] = None) -> bytes:
    """Return a copy of the PDF with signature page(s) appended after the last page."""
    generated_at = generated_at or datetime.now(timezone.utc)
    try:
        reader = PdfReader(BytesIO(original_pdf_bytes))
        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page)
    except Exception as exc:
        # pypdf raises more than PyPdfError on malformed input
        raise CompositionError("original document is not a readable PDF", {"reason": str(exc)}) from exc
    if not writer.pages:
        raise CompositionError("original document has no pages")

    sig_reader = PdfReader(BytesIO(render_signature_pages(title, signatures, generated_at)))
    for page in sig_reader.pages:
        writer.add_page(page)

    out = BytesIO()
    writer.write(out)
    return out.getvalue()
