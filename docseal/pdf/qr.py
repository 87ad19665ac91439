import io
from abc import ABC, abstractmethod

import qrcode


class BaseQrGenerator(ABC):
    """Contract for QR image generators."""

    @abstractmethod
    def to_image(self, url: str) -> bytes:
        """Render a URL as PNG bytes."""


class QrCodeGenerator(BaseQrGenerator):
    """Renders QR codes with the qrcode library (Pillow backend)."""

    def __init__(self, *, box_size: int = 10, border: int = 2) -> None:
        self._box_size = box_size
        self._border = border

    def to_image(self, url: str) -> bytes:
        qr = qrcode.QRCode(
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=self._box_size,
            border=self._border,
        )
        qr.add_data(url)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()
