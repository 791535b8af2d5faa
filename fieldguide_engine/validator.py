from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

AREA_LISTS = ("photoAreas", "descriptionAreas")


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and bool(v.strip())


def _check_area(area: Any, path: str) -> str | None:
    if not isinstance(area, dict):
        return f"{path}: must be an object"
    for k in ("x", "y", "width", "height"):
        if k not in area or area[k] is None:
            return f"{path}.{k}: is required"
        v = area[k]
        if not _is_number(v):
            return f"{path}.{k}: must be a number"
        # isfinite also rejects NaN.
        if not math.isfinite(v):
            return f"{path}.{k}: must be finite"
        if v != int(v):
            return f"{path}.{k}: must be a whole number"
    if area["x"] < 0:
        return f"{path}.x: must be non-negative"
    if area["y"] < 0:
        return f"{path}.y: must be non-negative"
    if area["width"] <= 0:
        return f"{path}.width: must be positive"
    if area["height"] <= 0:
        return f"{path}.height: must be positive"
    return None


def _check_plant(plant: Any, path: str) -> str | None:
    if not isinstance(plant, dict):
        return f"{path}: must be an object"
    if "name" not in plant or plant["name"] is None:
        return f"{path}.name: is required"
    if not _is_non_empty_str(plant["name"]):
        return f"{path}.name: must be a non-empty string"

    for key in AREA_LISTS:
        areas = plant.get(key)
        if areas is None:
            return f"{path}.{key}: is required"
        if not isinstance(areas, list):
            return f"{path}.{key}: must be an array"
        for i, area in enumerate(areas):
            err = _check_area(area, f"{path}.{key}[{i}]")
            if err:
                return err

    text = plant.get("descriptionText")
    if text is not None and not isinstance(text, str):
        return f"{path}.descriptionText: must be a string"
    return None


def validate_page_record(data: Any) -> tuple[bool, str | None]:
    """Structural check of a decoded layout record.

    Returns (ok, reason). reason names the first failing field path, e.g.
    "plants[1].photoAreas[0].width: must be positive". Never raises.
    """
    try:
        if not isinstance(data, dict):
            return False, "root: must be an object"
        if "page" not in data or data["page"] is None:
            return False, "page: is required"
        if not _is_non_empty_str(data["page"]):
            return False, "page: must be a non-empty string"
        if "plants" not in data or data["plants"] is None:
            return False, "plants: is required"
        if not isinstance(data["plants"], list):
            return False, "plants: must be an array"
        for i, plant in enumerate(data["plants"]):
            err = _check_plant(plant, f"plants[{i}]")
            if err:
                return False, err
    except Exception as e:
        return False, f"unexpected validation error: {e}"
    return True, None


def is_valid_layout_file(path: str | Path) -> bool:
    """True only for an existing, non-empty, parsable and valid layout JSON file."""
    p = Path(path)
    if not p.is_file():
        return False
    try:
        content = p.read_text(encoding="utf-8")
        if not content.strip():
            return False
        data = json.loads(content)
    except (OSError, ValueError) as e:
        logger.debug("unreadable layout file %s: %s", p, e)
        return False

    ok, reason = validate_page_record(data)
    if not ok:
        logger.info("existing layout file %s is invalid: %s", p.name, reason)
    return ok
