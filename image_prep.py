"""
Image normalisation for the proof report.

Every photo that lands in the PDF goes through prepare_image(): phone cameras
store portrait shots sideways with an EXIF orientation flag, and PyMuPDF
ignores that flag, so the pixels are rotated here and re-encoded as JPEG.
"""

import io, base64, binascii
from collections import namedtuple
from PIL import Image, ImageOps

PreparedImage = namedtuple("PreparedImage", ["data", "width", "height"])

WHITE = (255, 255, 255)


def prepare_image(data, quality=85):
    """Return the image upright, flattened to RGB and re-encoded as JPEG."""
    with Image.open(io.BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            rgba = img.convert("RGBA")
            flat = Image.new("RGB", rgba.size, WHITE)
            flat.paste(rgba, mask=rgba.split()[3])
            img  = flat
        else:
            img = img.convert("RGB")

        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=quality)
        return PreparedImage(buf.getvalue(), img.width, img.height)


def image_size(data):
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def decode_base64_image(value):
    """
    Decode a draft image sent back by the browser.

    Accepts either a data URL ("data:image/jpeg;base64,....") or a bare
    base64 string. Returns (bytes, mimetype); bare strings are assumed JPEG,
    which is what the form stores its previews as.
    """
    mimetype = "image/jpeg"
    payload  = value.strip()
    if payload.startswith("data:"):
        header, _, payload = payload.partition(",")
        mimetype = header[5:].split(";", 1)[0] or mimetype
    try:
        return base64.b64decode(payload, validate=True), mimetype
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e
