from __future__ import annotations

from pathlib import Path

from .paths import is_derived_image


def list_page_images(input_path: str | Path) -> list[Path]:
    """Return the page PNGs to process, in deterministic (sorted) order.

    - A single .png file is returned as-is.
    - For a folder, derived files written by this engine (<base>_layout.png,
      <base>_<n>_photo.png, <base>_<n>_caption.png) are skipped.
    """
    p = Path(input_path)
    if not p.exists():
        raise ValueError(f"input path does not exist: {p}")

    if p.is_file():
        if p.suffix.lower() != ".png":
            raise ValueError(f"input file is not a PNG: {p}")
        return [p]

    if not p.is_dir():
        raise ValueError(f"input path is neither file nor directory: {p}")

    files = sorted(f for f in p.iterdir() if f.is_file() and f.suffix.lower() == ".png")
    return [f for f in files if not is_derived_image(f)]
