"""QR code rendering for provisioning URIs, returned as data URIs."""

from __future__ import annotations

import base64
import io
import logging
from typing import Protocol

import qrcode
import qrcode.image.svg

logger = logging.getLogger(__name__)

FORMATS = ("png", "svg")


class QRRenderer(Protocol):
    def render(self, uri: str, fmt: str = "png") -> str: ...


class QRCodeRenderer:
    """Render with ``qrcode``; unknown formats fall back to PNG."""

    def __init__(self, box_size: int = 10, border: int = 4) -> None:
        self.box_size = box_size
        self.border = border

    def _build(self, uri: str, image_factory=None) -> qrcode.QRCode:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=self.box_size,
            border=self.border,
            image_factory=image_factory,
        )
        qr.add_data(uri)
        qr.make(fit=True)
        return qr

    def render(self, uri: str, fmt: str = "png") -> str:
        fmt = (fmt or "png").lower()
        if fmt not in FORMATS:
            logger.warning("Unknown QR format %r, falling back to png", fmt)
            fmt = "png"

        buffer = io.BytesIO()
        if fmt == "svg":
            img = self._build(uri, qrcode.image.svg.SvgPathImage).make_image()
            img.save(buffer)
            mime = "image/svg+xml"
        else:
            img = self._build(uri).make_image(fill_color="black", back_color="white")
            img.save(buffer, format="PNG")
            mime = "image/png"

        return f"data:{mime};base64,{base64.b64encode(buffer.getvalue()).decode()}"
