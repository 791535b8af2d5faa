from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from .utils import append_jsonl, utc_now_iso

LAYOUT_JSON_SUFFIX = "_layout.json"
LAYOUT_IMAGE_SUFFIX = "_layout.png"
ERRORS_JSONL = "errors.jsonl"

REGION_PHOTO = "photo"
REGION_CAPTION = "caption"

# <base>_layout, <base>_<n>_photo, <base>_<n>_caption
_DERIVED_STEM_RE = re.compile(r"(_layout|_\d+_(photo|caption))$")


@dataclass(frozen=True)
class PagePaths:
    image: Path
    out_dir: Path

    @property
    def page_id(self) -> str:
        return self.image.name

    @property
    def base_name(self) -> str:
        return self.image.stem

    @property
    def layout_json(self) -> Path:
        return self.out_dir / f"{self.base_name}{LAYOUT_JSON_SUFFIX}"

    @property
    def layout_image(self) -> Path:
        return self.out_dir / f"{self.base_name}{LAYOUT_IMAGE_SUFFIX}"

    def crop_path(self, index: int, kind: str) -> Path:
        return crop_path(self.out_dir, self.base_name, index, kind)


def page_paths(image: str | Path, out_dir: str | Path | None = None) -> PagePaths:
    image = Path(image)
    return PagePaths(image=image, out_dir=Path(out_dir) if out_dir else image.parent)


def crop_path(directory: str | Path, base_name: str, index: int, kind: str) -> Path:
    if kind not in (REGION_PHOTO, REGION_CAPTION):
        raise ValueError(f"unknown region kind: {kind}")
    return Path(directory) / f"{base_name}_{index}_{kind}.png"


def is_derived_image(path: str | Path) -> bool:
    """True for files this engine writes next to the pages (overlays, crops)."""
    return bool(_DERIVED_STEM_RE.search(Path(path).stem))


def record_error(errors_jsonl: Path, page_id: str, stage: str, message: str) -> None:
    append_jsonl(errors_jsonl, {"page_id": page_id, "stage": stage, "message": message, "at": utc_now_iso()})
