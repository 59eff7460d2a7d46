from __future__ import annotations

import io
from PIL import Image, ImageEnhance


def preprocess_to_png_bytes(raw: bytes, max_side: int = 2048) -> bytes:
    """
    Normalise a rendered chart before sending it to the model:
    - convert to RGB (drops the transparent background of browser screenshots)
    - downscale so the longest side fits ``max_side``
    - mild contrast boost
    """
    img = Image.open(io.BytesIO(raw)).convert("RGB")

    longest = max(img.size)
    if max_side and longest > max_side:
        scale = max_side / longest
        img = img.resize((max(1, round(img.size[0] * scale)), max(1, round(img.size[1] * scale))), Image.LANCZOS)

    img = ImageEnhance.Contrast(img).enhance(1.15)

    out = io.BytesIO()
    img.save(out, format="PNG", optimize=True)
    return out.getvalue()
