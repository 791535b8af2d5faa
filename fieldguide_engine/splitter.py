from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

from PIL import Image

from .edges import ImageSource, open_rgb
from .errors import CropError, ImageDecodeError
from .paths import REGION_CAPTION, REGION_PHOTO, PagePaths
from .types import Rect, SectionRule, SplitResult, Template
from .utils import ensure_dir

logger = logging.getLogger(__name__)


def section_rect(slot: Rect, rule: SectionRule) -> Rect:
    """Sub-rectangle of a slot: horizontal offset/width, full slot height."""
    return Rect(x=slot.x + rule.offset, y=slot.y, width=rule.width, height=slot.height)


def _check_bounds(rect: Rect, *, w: int, h: int) -> None:
    if not rect.is_valid():
        raise CropError(f"invalid crop rectangle: {rect}")
    if rect.right > w or rect.bottom > h:
        raise CropError(f"crop rectangle {rect} exceeds image bounds {w}x{h}")


def crop_png(image: Image.Image, rect: Rect) -> bytes:
    """Crop one rectangle and encode it as PNG. Out-of-bounds is a CropError."""
    w, h = image.size
    _check_bounds(rect, w=w, h=h)
    try:
        buf = BytesIO()
        image.crop(rect.to_xyxy()).save(buf, format="PNG")
        return buf.getvalue()
    except (OSError, ValueError) as e:
        raise CropError(f"failed to crop {rect}: {e}") from e


def split_by_template(source: ImageSource, template: Template) -> list[SplitResult]:
    """Cut every slot of the template into a photo crop and a caption crop.

    Results keep the template's slot order.
    """
    try:
        image = open_rgb(source)
    except ImageDecodeError as e:
        raise CropError(str(e)) from e

    results: list[SplitResult] = []
    for i, slot in enumerate(template.slots):
        photo_area = section_rect(slot, template.photo)
        caption_area = section_rect(slot, template.caption)
        try:
            photo_png = crop_png(image, photo_area)
            caption_png = crop_png(image, caption_area)
        except CropError as e:
            raise CropError(f"{template.code} slot {i}: {e}") from e

        logger.debug(
            "slot %d split: photo=%dx%d caption=%dx%d",
            i,
            photo_area.width,
            photo_area.height,
            caption_area.width,
            caption_area.height,
        )
        results.append(
            SplitResult(
                slot=slot,
                photo_area=photo_area,
                caption_area=caption_area,
                photo_png=photo_png,
                caption_png=caption_png,
            )
        )

    logger.info("split %s into %d slots", template.code, len(results))
    return results


def save_split_crops(paths: PagePaths, results: list[SplitResult]) -> list[Path]:
    """Write <base>_<i>_photo.png / <base>_<i>_caption.png for each slot."""
    written: list[Path] = []
    ensure_dir(paths.out_dir)
    for i, r in enumerate(results):
        for kind, data in ((REGION_PHOTO, r.photo_png), (REGION_CAPTION, r.caption_png)):
            out = paths.crop_path(i, kind)
            out.write_bytes(data)
            written.append(out)
    return written
