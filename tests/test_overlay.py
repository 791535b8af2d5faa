from __future__ import annotations

import json

from PIL import Image

from fieldguide_engine.overlay import (
    ERROR_JSON_INVALID,
    ERROR_JSON_MISSING,
    ERROR_PROCESSING,
    generate_layout_image,
    generate_layout_images,
    render_layout,
)
from fieldguide_engine.types import Entry, PageRecord, Rect


def _write_layout(directory, base: str, plants: list[dict]) -> None:
    (directory / f"{base}_layout.json").write_text(
        json.dumps({"page": f"{base}.png", "plants": plants}, ensure_ascii=False), encoding="utf-8"
    )


PLANT = {
    "name": "カタクリ",
    "photoAreas": [{"x": 848, "y": 119, "width": 502, "height": 567}],
    "descriptionAreas": [{"x": 240, "y": 119, "width": 608, "height": 567}],
    "descriptionText": "カタクリ",
}


class TestGenerateLayoutImage:
    def test_areas_are_outlined(self, make_page, workspace_dir):
        page = make_page("p.png")
        _write_layout(workspace_dir, "p", [PLANT])

        result = generate_layout_image(page)

        assert result.error is None
        with Image.open(workspace_dir / "p_layout.png") as out:
            assert out.size == (1600, 2000)
            rgb = out.convert("RGB")
            assert rgb.getpixel((849, 300)) == (0, 255, 0)
            assert rgb.getpixel((241, 300)) == (0, 0, 255)
            assert rgb.getpixel((600, 400)) == (255, 255, 255)

    def test_missing_layout_gets_banner(self, make_page, workspace_dir):
        page = make_page("p.png")
        result = generate_layout_image(page)

        assert result.error == ERROR_JSON_MISSING
        with Image.open(workspace_dir / "p_layout.png") as out:
            assert out.convert("RGB").getpixel((2, 2)) == (255, 0, 0)
            assert out.convert("RGB").getpixel((2, 500)) == (255, 255, 255)

    def test_invalid_layout_gets_banner(self, make_page, workspace_dir):
        page = make_page("p.png")
        (workspace_dir / "p_layout.json").write_text(json.dumps({"page": "p.png"}), encoding="utf-8")
        result = generate_layout_image(page)

        assert result.error == ERROR_JSON_INVALID
        assert "plants" in (result.message or "")
        assert (workspace_dir / "p_layout.png").is_file()

    def test_layout_and_output_dirs(self, make_page, workspace_dir):
        page = make_page("p.png")
        layouts = workspace_dir / "layouts"
        layouts.mkdir()
        _write_layout(layouts, "p", [PLANT])
        out = workspace_dir / "overlays"

        result = generate_layout_image(page, layout_dir=layouts, output_dir=out)

        assert result.error is None
        assert (out / "p_layout.png").is_file()


class TestGenerateLayoutImages:
    def test_broken_page_does_not_stop_the_rest(self, make_page, workspace_dir):
        (workspace_dir / "a.png").write_bytes(b"not a png")
        make_page("b.png")
        _write_layout(workspace_dir, "b", [PLANT])

        summary = generate_layout_images(workspace_dir)

        assert [r.image for r in summary.results] == ["a.png", "b.png"]
        assert summary.results[0].error == ERROR_PROCESSING
        assert summary.results[1].error is None
        assert (summary.succeeded, summary.failed) == (1, 1)

    def test_rerun_ignores_its_own_outputs(self, make_page, workspace_dir):
        make_page("b.png")
        _write_layout(workspace_dir, "b", [])
        generate_layout_images(workspace_dir)
        summary = generate_layout_images(workspace_dir)
        assert [r.image for r in summary.results] == ["b.png"]


# ═══════════════════════════════════════════════════════════════════════════════
# RENDERING
# ═══════════════════════════════════════════════════════════════════════════════

class TestRenderLayout:
    def test_all_labels_drawn_with_one_composite(self, monkeypatch):
        page = Image.new("RGB", (1600, 2000), "white")
        slots = [(119, 567), (702, 577), (1298, 573)]
        record = PageRecord(
            page="p.png",
            entries=[
                Entry(name="Ab", photo_areas=[Rect(848, y, 502, h)], caption_areas=[Rect(240, y, 608, h)])
                for y, h in slots
            ],
        )
        composites: list[tuple[int, int]] = []
        original = Image.Image.alpha_composite

        def counting(self, im, *args, **kwargs):
            composites.append(im.size)
            return original(self, im, *args, **kwargs)

        monkeypatch.setattr(Image.Image, "alpha_composite", counting)

        rgb = render_layout(page, record)

        assert composites == [(1600, 2000)]
        for y, _ in slots:
            band = [rgb.getpixel((x, yy)) for x in range(848, 900) for yy in range(max(y - 30, 0), y)]
            assert any(max(px) < 100 for px in band), f"no label text above y={y}"
