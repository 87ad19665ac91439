from collections.abc import Sequence

import pymupdf

from docseal.logging.logger import Log
from docseal.pdf.exceptions import InvalidPdfError
from docseal.pdf.models import CompositeResult, StampBox, StampPlacement
from docseal.pdf.qr import BaseQrGenerator


def fit_stamp_box(
    page_width: float,
    page_height: float,
    placement: StampPlacement,
    image_width: float,
    image_height: float,
) -> StampBox:
    """Fit an image into a placement box, keeping its aspect ratio.

    The box is given in page fractions with a top-left origin. The image is
    shrunk on whichever axis would overflow and centered with equal padding.
    The result is in PDF user space: points, bottom-left origin.
    """
    box_w = placement.width * page_width  # type: ignore[operator]
    box_h = placement.height * page_height  # type: ignore[operator]

    image_ratio = image_width / image_height
    box_ratio = box_w / box_h
    if image_ratio > box_ratio:
        final_w = box_w
        final_h = box_w / image_ratio
    else:
        final_h = box_h
        final_w = box_h * image_ratio

    x_pad = (box_w - final_w) / 2
    y_pad = (box_h - final_h) / 2

    x = placement.position_x * page_width + x_pad
    y_top = placement.position_y * page_height + y_pad
    y = page_height - y_top - final_h
    return StampBox(x=x, y=y, width=final_w, height=final_h)


def _to_page_rect(box: StampBox, page_height: float) -> pymupdf.Rect:
    """Convert a bottom-left-origin box to PyMuPDF's top-left rectangle."""
    top = page_height - box.y - box.height
    return pymupdf.Rect(box.x, top, box.x + box.width, top + box.height)


class StampCompositor:
    """Draws signature images and an optional QR audit mark onto a PDF.

    Malformed placements are skipped with a warning so that one bad entry
    never blocks the rest of the batch.
    """

    def __init__(
        self,
        qr_generator: BaseQrGenerator | None = None,
        *,
        qr_anchor_x: float = 40.0,
        qr_anchor_y: float = 40.0,
        qr_size: float = 80.0,
    ) -> None:
        self._qr_generator = qr_generator
        self._qr_anchor_x = qr_anchor_x
        self._qr_anchor_y = qr_anchor_y
        self._qr_size = qr_size

    def compose(
        self,
        pdf_bytes: bytes,
        placements: Sequence[StampPlacement],
        verification_url: str | None = None,
    ) -> CompositeResult:
        """Return the composited, unsealed PDF bytes.

        Raises:
            InvalidPdfError: if the source bytes cannot be opened.
        """
        try:
            doc = pymupdf.open(stream=pdf_bytes, filetype="pdf")  # type: ignore[no-untyped-call]
        except Exception as exc:
            raise InvalidPdfError(f"Cannot open PDF: {exc}") from exc

        with doc:
            drawn = 0
            for index, placement in enumerate(placements):
                if self._draw_stamp(doc, index, placement):
                    drawn += 1

            qr_drawn = False
            if verification_url:
                qr_drawn = self._draw_qr(doc, verification_url)

            output = doc.tobytes(garbage=3, deflate=True)

        Log.info(f"Composited {drawn}/{len(placements)} stamps (qr={qr_drawn})")
        return CompositeResult(pdf_bytes=output, stamps_drawn=drawn, qr_drawn=qr_drawn)

    def _draw_stamp(self, doc: pymupdf.Document, index: int, placement: StampPlacement) -> bool:
        if not placement.image_bytes:
            Log.warning(f"Skipping stamp #{index}: no image")
            return False
        if not placement.width or not placement.height or placement.width <= 0 or placement.height <= 0:
            Log.warning(f"Skipping stamp #{index}: missing or non-positive size")
            return False
        if placement.page_number < 1 or placement.page_number > doc.page_count:
            Log.warning(
                f"Skipping stamp #{index}: page {placement.page_number} "
                f"outside 1..{doc.page_count}"
            )
            return False

        try:
            pixmap = pymupdf.Pixmap(placement.image_bytes)
        except Exception as exc:
            Log.warning(f"Skipping stamp #{index}: undecodable image ({exc})")
            return False
        if pixmap.width <= 0 or pixmap.height <= 0:
            Log.warning(f"Skipping stamp #{index}: empty image")
            return False

        page = doc[placement.page_number - 1]
        page_width, page_height = page.rect.width, page.rect.height
        box = fit_stamp_box(page_width, page_height, placement, pixmap.width, pixmap.height)
        page.insert_image(
            _to_page_rect(box, page_height),
            stream=placement.image_bytes,
            keep_proportion=False,
            overlay=True,
        )
        return True

    def _draw_qr(self, doc: pymupdf.Document, verification_url: str) -> bool:
        if self._qr_generator is None:
            Log.warning("QR mark requested but no QR generator is configured")
            return False
        try:
            qr_png = self._qr_generator.to_image(verification_url)
            page = doc[doc.page_count - 1]
            box = StampBox(
                x=self._qr_anchor_x,
                y=self._qr_anchor_y,
                width=self._qr_size,
                height=self._qr_size,
            )
            page.insert_image(_to_page_rect(box, page.rect.height), stream=qr_png, overlay=True)
        except Exception as exc:
            Log.warning(f"QR mark not drawn: {exc}")
            return False
        return True
