"""
Image handling for doodle submissions.

Decodes the uploaded data URI, normalizes the drawing onto a fixed white
square canvas, fingerprints the result for duplicate detection and runs the
blank-image heuristic used as the moderation gate.
"""

import base64
import binascii
import hashlib
import math
import re
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, ImageOps, ImageStat, UnidentifiedImageError

from doodleboard.config import settings
from doodleboard.core.errors import ImageTooLarge, InvalidImage, MissingImage

_DATA_URI_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    width: int
    height: int
    content_type: str = "image/png"
    extension: str = "png"


def max_encoded_length(max_bytes: int) -> int:
    """Longest base64 text that can decode to at most ``max_bytes``."""
    return 4 * math.ceil(max_bytes / 3) + 4


def decode_data_uri(image_data: Optional[str], max_bytes: int = settings.MAX_IMAGE_BYTES) -> bytes:
    """Strip an optional ``data:image/...;base64,`` prefix and decode.

    Text too long to fit under ``max_bytes`` is rejected before decoding.
    """
    if not image_data:
        raise MissingImage()
    payload = _DATA_URI_PREFIX.sub("", image_data.strip(), count=1)
    if len(payload) > max_encoded_length(max_bytes):
        raise ImageTooLarge()
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidImage("Image data is not valid base64")
    if not raw:
        raise MissingImage()
    return raw


class ImageProcessor:
    def __init__(
        self,
        canvas_size: int = settings.CANVAS_SIZE,
        max_bytes: int = settings.MAX_IMAGE_BYTES,
        blank_low: float = settings.BLANK_LOW,
        blank_high: float = settings.BLANK_HIGH,
    ):
        self.canvas_size = canvas_size
        self.max_bytes = max_bytes
        self.blank_low = blank_low
        self.blank_high = blank_high

    def validate(self, raw: Optional[bytes]) -> bytes:
        if not raw:
            raise MissingImage()
        if len(raw) > self.max_bytes:
            raise ImageTooLarge()
        return raw

    def normalize(self, raw: Optional[bytes]) -> NormalizedImage:
        """
        Fit the image into a square white canvas and re-encode it as PNG.

        The image is scaled (up or down) to fit inside the canvas while keeping
        its aspect ratio, centered, and any transparency is flattened onto
        white so the stored bytes do not depend on the source format.
        """
        raw = self.validate(raw)
        try:
            with Image.open(BytesIO(raw)) as im:
                im.load()
                rgba = im.convert("RGBA")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
            raise InvalidImage()

        size = (self.canvas_size, self.canvas_size)
        fitted = ImageOps.contain(rgba, size, method=Image.Resampling.LANCZOS)
        canvas = Image.new("RGB", size, (255, 255, 255))
        offset = ((size[0] - fitted.width) // 2, (size[1] - fitted.height) // 2)
        canvas.paste(fitted, offset, mask=fitted)

        buf = BytesIO()
        canvas.save(buf, format="PNG", optimize=False, compress_level=6)
        return NormalizedImage(data=buf.getvalue(), width=size[0], height=size[1])

    @staticmethod
    def fingerprint(data: bytes) -> str:
        return hashlib.md5(data).hexdigest()

    def is_likely_blank(self, data: bytes) -> bool:
        """Flag images whose every channel is near-black, or whose every channel is near-white."""
        try:
            with Image.open(BytesIO(data)) as im:
                means = ImageStat.Stat(im.convert("RGB")).mean
        except (UnidentifiedImageError, OSError, ValueError):
            raise InvalidImage()
        return all(m < self.blank_low for m in means) or all(m > self.blank_high for m in means)
