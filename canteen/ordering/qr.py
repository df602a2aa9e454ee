# canteen/ordering/qr.py
from __future__ import annotations

import base64
import io
import json
from typing import Any, Dict

import qrcode


def render_png(text: str, box_size: int = 10, border: int = 2) -> bytes:
    qr = qrcode.QRCode(box_size=box_size, border=border)
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf)
    return buf.getvalue()


def data_url(payload: Dict[str, Any]) -> str:
    png = render_png(json.dumps(payload, ensure_ascii=False, default=str))
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
