"""Reference image preparation – cover-resize and centre-crop with Pillow."""

from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image

from models import ReferenceImage, parse_size
from services.errors import PreconditionError

logger = logging.getLogger("vgen.reference")

CONTENT_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
}
JPEG_QUALITY = 95


def prepare_reference(image_bytes: bytes, target_width: int, target_height: int) -> bytes:
    """
    Scale the image to cover ``target_width`` x ``target_height`` and crop the
    excess evenly from both sides. PNG input stays PNG; everything else is
    re-encoded as JPEG.
    """
    with Image.open(io.BytesIO(image_bytes)) as img:
        fmt = img.format
        src_w, src_h = img.size
        scale = max(target_width / src_w, target_height / src_h)
        scaled_w = max(target_width, int(src_w * scale))
        scaled_h = max(target_height, int(src_h * scale))

        scaled = img.resize((scaled_w, scaled_h), Image.Resampling.NEAREST)
        left = (scaled_w - target_width) // 2
        top = (scaled_h - target_height) // 2
        cropped = scaled.crop((left, top, left + target_width, top + target_height))

        out = io.BytesIO()
        if fmt == "PNG":
            cropped.save(out, format="PNG")
        else:
            cropped.convert("RGB").save(out, format="JPEG", quality=JPEG_QUALITY)
    return out.getvalue()


def load_reference(path: str | Path, size: str) -> ReferenceImage:
    """Read a reference image from disk and fit it to ``size`` (``WIDTHxHEIGHT``)."""
    path = Path(path).expanduser()
    if not path.is_file():
        raise PreconditionError(f"Reference image does not exist: {path}", stage="precondition")

    raw = path.read_bytes()
    width, height = parse_size(size)
    try:
        with Image.open(io.BytesIO(raw)) as img:
            fmt = img.format
        data = prepare_reference(raw, width, height)
    except (OSError, Image.DecompressionBombError) as e:
        raise PreconditionError(f"failed to decode image {path}: {e}", stage="precondition") from e

    content_type = CONTENT_TYPES["PNG"] if fmt == "PNG" else CONTENT_TYPES["JPEG"]
    logger.info("Reference image %s prepared at %s (%d bytes)", path.name, size, len(data))
    return ReferenceImage(filename=path.name, content_type=content_type, data=data)
