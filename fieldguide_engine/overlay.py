"""Layout overlay images for checking extract-layout results by eye.

Photo areas are outlined in green, caption areas in blue, and each entry's
name is drawn above its first area. Pages whose layout file is missing or
invalid get a red banner instead.
"""
from __future__ import annotations

import json
import logging
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from PIL import Image, ImageDraw, ImageFont

from .edges import open_rgb
from .page_provider import list_page_images
from .paths import page_paths
from .types import PageRecord, Rect
from .utils import ensure_dir
from .validator import validate_page_record

logger = logging.getLogger(__name__)

PHOTO_COLOR = "#00FF00"
CAPTION_COLOR = "#0000FF"
BANNER_COLOR = "#FF0000"
LINE_WIDTH = 3
FONT_SIZE = 24
BANNER_HEIGHT = 80
LABEL_BACKGROUND = (255, 255, 255, 200)

ERROR_JSON_MISSING = "json_missing"
ERROR_JSON_INVALID = "json_invalid"
ERROR_PROCESSING = "processing_error"


@dataclass
class OverlayResult:
    image: str
    output: str | None = None
    error: str | None = None  # json_missing|json_invalid|processing_error
    message: str | None = None


@dataclass
class OverlaySummary:
    results: list[OverlayResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.error is None)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.error is not None)


def _get_font(size: int = FONT_SIZE) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    for font_name in ("NotoSansCJK-Regular.ttc", "DejaVuSans.ttf", "arial.ttf", "Arial.ttf", "FreeSans.ttf"):
        try:
            return ImageFont.truetype(font_name, size)
        except OSError:
            continue
    return ImageFont.load_default()


def _draw_areas(draw: ImageDraw.ImageDraw, areas: list[Rect], color: str) -> None:
    for a in areas:
        x0, y0, x1, y1 = a.to_xyxy()
        draw.rectangle([(x0, y0), (x1 - 1, y1 - 1)], outline=color, width=LINE_WIDTH)


def _draw_label(draw: ImageDraw.ImageDraw, anchor: Rect, text: str, font: Any) -> None:
    """Name label just above the anchor area, on a translucent white box."""
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    tw, th = right - left, bottom - top
    x = anchor.x
    y = max(anchor.y - th - 8, 0)
    draw.rectangle([(x, y), (x + tw + 8, y + th + 8)], fill=LABEL_BACKGROUND)
    draw.text((x + 4 - left, y + 4 - top), text, fill=(0, 0, 0, 255), font=font)


def _draw_banner(image: Image.Image, message: str, font: Any) -> None:
    draw = ImageDraw.Draw(image)
    w, _ = image.size
    draw.rectangle([(0, 0), (w, BANNER_HEIGHT)], fill=BANNER_COLOR)

    # Rough wrap width from the average glyph width of the font.
    left, _, right, _ = draw.textbbox((0, 0), "M", font=font)
    chars = max(int((w - 20) / max(right - left, 1)), 10)
    lines = textwrap.wrap(message, width=chars) or [message]

    line_h = FONT_SIZE + 4
    y = max((BANNER_HEIGHT - line_h * len(lines)) // 2, 0)
    for line in lines:
        l, _, r, _ = draw.textbbox((0, 0), line, font=font)
        draw.text(((w - (r - l)) // 2, y), line, fill="white", font=font)
        y += line_h


def render_layout(image: Image.Image, record: PageRecord) -> Image.Image:
    """Draw all entries of a record onto a copy of the page."""
    canvas = image.convert("RGBA")
    draw = ImageDraw.Draw(canvas)
    font = _get_font()

    for entry in record.entries:
        _draw_areas(draw, entry.photo_areas, PHOTO_COLOR)
        _draw_areas(draw, entry.caption_areas, CAPTION_COLOR)

    # Labels share one translucent layer, composited once per page.
    labels = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    label_draw = ImageDraw.Draw(labels)
    for entry in record.entries:
        anchor = (entry.photo_areas or entry.caption_areas or [None])[0]
        if anchor is not None:
            _draw_label(label_draw, anchor, entry.name, font)
    canvas.alpha_composite(labels)

    return canvas.convert("RGB")


def render_error(image: Image.Image, message: str) -> Image.Image:
    canvas = image.convert("RGB")
    _draw_banner(canvas, message, _get_font())
    return canvas


def _load_record(layout_json: Path) -> tuple[PageRecord | None, str | None, str | None]:
    """(record, error_type, message) for one layout file."""
    if not layout_json.is_file():
        return None, ERROR_JSON_MISSING, f"layout file not found: {layout_json.name}"
    try:
        data = json.loads(layout_json.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        return None, ERROR_JSON_INVALID, f"cannot parse {layout_json.name}: {e}"
    ok, reason = validate_page_record(data)
    if not ok:
        return None, ERROR_JSON_INVALID, f"invalid {layout_json.name}: {reason}"
    return PageRecord.from_dict(data), None, None


def generate_layout_image(
    image_path: str | Path,
    *,
    layout_dir: str | Path | None = None,
    output_dir: str | Path | None = None,
) -> OverlayResult:
    image_path = Path(image_path)
    layout_paths = page_paths(image_path, layout_dir)
    out_paths = page_paths(image_path, output_dir or layout_dir)
    result = OverlayResult(image=image_path.name)

    try:
        page = open_rgb(image_path)
        record, error, message = _load_record(layout_paths.layout_json)
        if record is None:
            logger.warning("%s: %s", image_path.name, message)
            result.error, result.message = error, message
            rendered = render_error(page, message or str(error))
        else:
            rendered = render_layout(page, record)

        ensure_dir(out_paths.out_dir)
        rendered.save(out_paths.layout_image, format="PNG")
        result.output = str(out_paths.layout_image)
    except Exception as e:
        logger.error("failed to render layout image for %s: %s", image_path.name, e)
        result.error, result.message = ERROR_PROCESSING, str(e)

    return result


def generate_layout_images(
    input_path: str | Path,
    *,
    layout_dir: str | Path | None = None,
    output_dir: str | Path | None = None,
) -> OverlaySummary:
    """Render <base>_layout.png for every page under input_path."""
    summary = OverlaySummary()
    for image in list_page_images(input_path):
        summary.results.append(generate_layout_image(image, layout_dir=layout_dir, output_dir=output_dir))

    logger.info("generate-layout-image completed: succeeded=%d failed=%d", summary.succeeded, summary.failed)
    return summary
