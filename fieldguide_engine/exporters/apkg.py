from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..paths import ERRORS_JSONL, LAYOUT_JSON_SUFFIX, REGION_CAPTION, REGION_PHOTO, crop_path, record_error
from ..types import PageRecord
from ..utils import load_json, stable_int_id
from ..validator import validate_page_record

logger = logging.getLogger(__name__)

DEFAULT_DECK_NAME = "Field Guide"


@dataclass
class ApkgExportStats:
    pages_seen: int = 0
    pages_invalid: int = 0
    entries_seen: int = 0
    cards_exported: int = 0
    cards_skipped_missing_image: int = 0
    deck_name: str | None = None


def _back_html(caption_media: str, name: str, text: str) -> str:
    parts = [f'<img src="{html.escape(caption_media)}">']
    lines = [html.escape(ln) for ln in text.splitlines() if ln.strip()]
    if lines:
        parts.append("<br>".join(lines))
    if name:
        parts.append(f"<b>{html.escape(name)}</b>")
    return "<br>".join(parts)


def export_apkg(
    *,
    src_dir: str | Path,
    out_path: str | Path,
    deck_name: str | None = None,
) -> ApkgExportStats:
    """Build an Anki .apkg from the layout files and crops in src_dir.

    Rules:
    - One note per entry, in page file order then slot order
    - Front: photo crop; Back: caption crop, caption text, name
    - An entry whose photo or caption crop is missing is skipped with a warning
    - If 0 cards exported => error (exit non-zero at CLI)
    """

    try:
        import genanki  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "genanki is required for apkg export. Install with: pip install genanki"
        ) from e

    src_dir = Path(src_dir)
    out_path = Path(out_path)
    if not src_dir.is_dir():
        raise ValueError(f"source directory does not exist: {src_dir}")

    deck_name = deck_name or DEFAULT_DECK_NAME
    stats = ApkgExportStats(deck_name=deck_name)
    errors_path = src_dir / ERRORS_JSONL

    model = genanki.Model(
        stable_int_id(f"fieldguide_engine:model:{deck_name}"),
        "fieldguide_engine_photo_caption",
        fields=[
            {"name": "Front"},
            {"name": "Back"},
        ],
        templates=[
            {
                "name": "Card 1",
                "qfmt": "{{Front}}",
                "afmt": "{{FrontSide}}<hr id=answer>{{Back}}",
            }
        ],
    )
    deck = genanki.Deck(stable_int_id(f"fieldguide_engine:deck:{deck_name}"), deck_name)
    media_files: list[str] = []

    for layout_file in sorted(src_dir.glob(f"*{LAYOUT_JSON_SUFFIX}")):
        stats.pages_seen += 1
        base_name = layout_file.name[: -len(LAYOUT_JSON_SUFFIX)]

        data: Any
        try:
            data = load_json(layout_file)
        except (OSError, ValueError) as e:
            data, reason = None, str(e)
        else:
            _, reason = validate_page_record(data)
        if reason:
            stats.pages_invalid += 1
            logger.warning("skipping %s: %s", layout_file.name, reason)
            record_error(errors_path, page_id=layout_file.name, stage="export", message=f"invalid_layout: {reason}")
            continue

        record = PageRecord.from_dict(data)
        for i, entry in enumerate(record.entries):
            stats.entries_seen += 1
            photo = crop_path(src_dir, base_name, i, REGION_PHOTO)
            caption = crop_path(src_dir, base_name, i, REGION_CAPTION)
            missing = [p.name for p in (photo, caption) if not p.is_file()]
            if missing:
                stats.cards_skipped_missing_image += 1
                logger.warning("skipping %s entry %d: missing %s", record.page, i, ", ".join(missing))
                record_error(
                    errors_path,
                    page_id=record.page,
                    stage="export",
                    message=f"missing_image: {', '.join(missing)}",
                )
                continue

            media_files.extend([str(photo), str(caption)])
            front_html = f'<img src="{html.escape(photo.name)}">'
            back_html = _back_html(caption.name, entry.name, entry.caption_text)

            note = genanki.Note(
                model=model,
                fields=[front_html, back_html],
                guid=genanki.guid_for(f"{base_name}:{i}"),
            )
            deck.add_note(note)
            stats.cards_exported += 1

    if stats.cards_exported <= 0:
        raise RuntimeError(f"No cards exported from {src_dir}. Run extract-layout with crops enabled first.")

    out_path.parent.mkdir(parents=True, exist_ok=True)
    pkg = genanki.Package(deck)
    pkg.media_files = media_files
    pkg.write_to_file(str(out_path))

    logger.info("exported %d cards to %s", stats.cards_exported, out_path)
    return stats
