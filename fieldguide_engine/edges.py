from __future__ import annotations

from io import BytesIO
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from .errors import ImageDecodeError

ImageSource = str | Path | bytes | Image.Image


def open_rgb(source: ImageSource) -> Image.Image:
    """Decode a page image (path, encoded bytes or PIL image) into RGB.

    Raises ImageDecodeError when the data cannot be decoded or has no size.
    """
    try:
        if isinstance(source, Image.Image):
            img = source.convert("RGB")
        elif isinstance(source, (bytes, bytearray)):
            with Image.open(BytesIO(source)) as im:
                img = im.convert("RGB")
        else:
            with Image.open(source) as im:
                img = im.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"cannot decode image: {e}") from e

    w, h = img.size
    if w <= 0 or h <= 0:
        raise ImageDecodeError(f"image has no usable size: {w}x{h}")
    return img


def edge_map_from_image(img: Image.Image) -> np.ndarray:
    """Greyscale + invert: blank (white) paper -> 0, ink -> high values."""
    arr = np.array(img.convert("RGB"))
    gray = cv2.cvtColor(arr, cv2.COLOR_RGB2GRAY)
    return cv2.bitwise_not(gray)


def build_edge_map(source: ImageSource) -> np.ndarray:
    """Return a uint8 (height, width) intensity map used for boundary scoring."""
    return edge_map_from_image(open_rgb(source))
