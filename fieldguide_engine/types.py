from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

UNKNOWN_NAME = "unknown"


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def is_valid(self) -> bool:
        return self.x >= 0 and self.y >= 0 and self.width > 0 and self.height > 0

    def to_xyxy(self) -> tuple[int, int, int, int]:
        return self.x, self.y, self.right, self.bottom

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rect:
        return cls(x=int(data["x"]), y=int(data["y"]), width=int(data["width"]), height=int(data["height"]))


@dataclass(frozen=True)
class SectionRule:
    offset: int  # relative to the slot's left edge
    width: int


@dataclass(frozen=True)
class Template:
    code: str
    slots: tuple[Rect, ...]
    photo: SectionRule
    caption: SectionRule


@dataclass(frozen=True)
class MatchResult:
    template: Template | None
    score: float | None
    scores: tuple[tuple[str, float], ...] = ()

    @property
    def matched(self) -> bool:
        return self.template is not None


@dataclass(frozen=True)
class SplitResult:
    slot: Rect
    photo_area: Rect
    caption_area: Rect
    photo_png: bytes
    caption_png: bytes


@dataclass(frozen=True)
class Recognition:
    name: str
    text: str


@dataclass
class Entry:
    name: str
    photo_areas: list[Rect] = field(default_factory=list)
    caption_areas: list[Rect] = field(default_factory=list)
    caption_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "photoAreas": [r.to_dict() for r in self.photo_areas],
            "descriptionAreas": [r.to_dict() for r in self.caption_areas],
            "descriptionText": self.caption_text,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Entry:
        return cls(
            name=str(data["name"]),
            photo_areas=[Rect.from_dict(a) for a in data.get("photoAreas", [])],
            caption_areas=[Rect.from_dict(a) for a in data.get("descriptionAreas", [])],
            caption_text=str(data.get("descriptionText") or ""),
        )


@dataclass
class PageRecord:
    page: str  # image filename, e.g. B0C1234_12.png
    entries: list[Entry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"page": self.page, "plants": [e.to_dict() for e in self.entries]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageRecord:
        return cls(page=str(data["page"]), entries=[Entry.from_dict(p) for p in data.get("plants", [])])
