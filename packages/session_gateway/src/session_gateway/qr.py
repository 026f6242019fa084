"""
QR code rendering for pairing payloads.
"""

import io

import qrcode
from qrcode.image.pure import PyPNGImage

PNG_MEDIA_TYPE = "image/png"


def render_qr_png(payload: str, box_size: int = 10, border: int = 4) -> bytes:
    """Render a pairing payload as PNG bytes."""
    qr = qrcode.QRCode(box_size=box_size, border=border, image_factory=PyPNGImage)
    qr.add_data(payload)
    qr.make(fit=True)

    buffer = io.BytesIO()
    qr.make_image().save(buffer)
    return buffer.getvalue()
