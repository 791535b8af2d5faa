from __future__ import annotations

import io

import pytest
from PIL import Image

from fieldguide_engine.errors import CropError
from fieldguide_engine.page_provider import list_page_images
from fieldguide_engine.paths import crop_path, is_derived_image, page_paths
from fieldguide_engine.splitter import crop_png, save_split_crops, section_rect, split_by_template
from fieldguide_engine.templates import EVEN_3ROWS, ODD_3ROWS
from fieldguide_engine.types import Rect, SectionRule


# ═══════════════════════════════════════════════════════════════════════════════
# SECTION GEOMETRY
# ═══════════════════════════════════════════════════════════════════════════════

class TestSectionRect:
    def test_offsets_are_relative_to_slot(self):
        slot = Rect(240, 119, 1110, 567)
        assert section_rect(slot, SectionRule(608, 502)) == Rect(848, 119, 502, 567)
        assert section_rect(slot, SectionRule(0, 608)) == Rect(240, 119, 608, 567)

    def test_even_page_photo_is_on_the_left(self):
        slot = EVEN_3ROWS.slots[0]
        photo = section_rect(slot, EVEN_3ROWS.photo)
        caption = section_rect(slot, EVEN_3ROWS.caption)
        assert photo.x == slot.x
        assert caption.x == photo.right
        assert caption.right == slot.right


# ═══════════════════════════════════════════════════════════════════════════════
# CROPPING
# ═══════════════════════════════════════════════════════════════════════════════

class TestCrop:
    def test_crop_is_png_of_rect_size(self):
        img = Image.new("RGB", (100, 80), "white")
        data = crop_png(img, Rect(10, 20, 30, 40))
        with Image.open(io.BytesIO(data)) as out:
            assert out.format == "PNG"
            assert out.size == (30, 40)

    def test_rect_past_right_edge_raises(self):
        img = Image.new("RGB", (100, 80), "white")
        with pytest.raises(CropError):
            crop_png(img, Rect(90, 0, 20, 10))

    def test_empty_rect_raises(self):
        img = Image.new("RGB", (100, 80), "white")
        with pytest.raises(CropError):
            crop_png(img, Rect(0, 0, 0, 10))

    def test_split_keeps_slot_order(self, make_page):
        results = split_by_template(make_page(), ODD_3ROWS)
        assert [r.slot for r in results] == list(ODD_3ROWS.slots)
        assert results[0].photo_area == Rect(848, 119, 502, 567)
        assert results[2].caption_area == Rect(240, 1298, 608, 573)
        with Image.open(io.BytesIO(results[1].caption_png)) as cap:
            assert cap.size == (608, 577)

    def test_split_on_small_page_names_the_slot(self, make_page):
        with pytest.raises(CropError, match="ODD_3ROWS slot 0"):
            split_by_template(make_page(size=(800, 600)), ODD_3ROWS)

    def test_split_on_undecodable_page_is_crop_error(self, workspace_dir):
        path = workspace_dir / "bad.png"
        path.write_bytes(b"nope")
        with pytest.raises(CropError):
            split_by_template(path, ODD_3ROWS)

    def test_saved_crop_names(self, make_page, workspace_dir):
        page = make_page("B0C_12.png")
        results = split_by_template(page, ODD_3ROWS)
        written = save_split_crops(page_paths(page), results)
        assert [p.name for p in written] == [
            "B0C_12_0_photo.png",
            "B0C_12_0_caption.png",
            "B0C_12_1_photo.png",
            "B0C_12_1_caption.png",
            "B0C_12_2_photo.png",
            "B0C_12_2_caption.png",
        ]
        assert all(p.parent == workspace_dir for p in written)


# ═══════════════════════════════════════════════════════════════════════════════
# PATHS / PAGE DISCOVERY
# ═══════════════════════════════════════════════════════════════════════════════

class TestPaths:
    def test_layout_paths(self, workspace_dir):
        paths = page_paths(workspace_dir / "p_3.png", workspace_dir / "out")
        assert paths.page_id == "p_3.png"
        assert paths.layout_json == workspace_dir / "out" / "p_3_layout.json"
        assert paths.layout_image == workspace_dir / "out" / "p_3_layout.png"

    def test_unknown_region_kind(self, workspace_dir):
        with pytest.raises(ValueError):
            crop_path(workspace_dir, "p", 0, "thumbnail")

    def test_derived_images(self):
        assert is_derived_image("p_layout.png")
        assert is_derived_image("p_0_photo.png")
        assert is_derived_image("p_12_caption.png")
        assert not is_derived_image("p_12.png")
        assert not is_derived_image("photo.png")


class TestPageProvider:
    def test_folder_listing_is_sorted_and_skips_outputs(self, make_page):
        make_page("b.png")
        make_page("a.png")
        make_page("a_layout.png")
        make_page("a_0_photo.png")
        make_page("a_0_caption.png")
        pages = list_page_images(make_page("c.png").parent)
        assert [p.name for p in pages] == ["a.png", "b.png", "c.png"]

    def test_single_png(self, make_page):
        page = make_page("one.png")
        assert list_page_images(page) == [page]

    def test_non_png_file_rejected(self, workspace_dir):
        f = workspace_dir / "notes.txt"
        f.write_text("x")
        with pytest.raises(ValueError):
            list_page_images(f)

    def test_missing_path_rejected(self, workspace_dir):
        with pytest.raises(ValueError):
            list_page_images(workspace_dir / "nowhere")
