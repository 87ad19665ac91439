from dataclasses import dataclass
from io import BytesIO
from typing import Any

from pyhanko.sign.signers.pdf_signer import PdfTBSDocument


@dataclass(frozen=True)
class StampPlacement:
    """A signature image to draw, in page-fraction coordinates.

    Origin is the top-left corner of the page, Y grows downward. page_number
    is 1-based.
    """

    page_number: int
    position_x: float
    position_y: float
    width: float | None
    height: float | None
    image_bytes: bytes | None


@dataclass(frozen=True)
class StampBox:
    """Fitted image rectangle in PDF user space (bottom-left origin, points)."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class CompositeResult:
    pdf_bytes: bytes
    stamps_drawn: int
    qr_drawn: bool = False


@dataclass(frozen=True)
class LockedDocument:
    """Composited PDF re-saved with permission encryption."""

    pdf_bytes: bytes


@dataclass(frozen=True)
class PlaceholderedDocument:
    """Locked PDF with a reserved signature field and its byte-range digest.

    Wraps in-flight pyHanko state; it can be sealed exactly once.
    """

    prepared_digest: Any
    tbs_document: PdfTBSDocument
    output: BytesIO


@dataclass(frozen=True)
class SealedDocument:
    pdf_bytes: bytes
