"""Layout template catalog.

Coordinates are absolute pixels on full-page captures. Odd and
even pages mirror each other: odd pages carry the caption on the left of each
slot, even pages on the right.

Order matters: when two templates score the same, the earlier one wins.
"""
from __future__ import annotations

from .types import Rect, SectionRule, Template

ODD_3ROWS = Template(
    code="ODD_3ROWS",
    slots=(
        Rect(240, 119, 1110, 567),
        Rect(240, 702, 1110, 577),
        Rect(240, 1298, 1110, 573),
    ),
    photo=SectionRule(offset=608, width=502),
    caption=SectionRule(offset=0, width=608),
)

EVEN_3ROWS = Template(
    code="EVEN_3ROWS",
    slots=(
        Rect(308, 113, 1096, 577),
        Rect(308, 708, 1096, 569),
        Rect(308, 1297, 1096, 569),
    ),
    photo=SectionRule(offset=0, width=483),
    caption=SectionRule(offset=483, width=613),
)

ODD_2ROWS = Template(
    code="ODD_2ROWS",
    slots=(
        Rect(230, 115, 1096, 843),
        Rect(230, 1004, 1096, 843),
    ),
    photo=SectionRule(offset=638, width=458),
    caption=SectionRule(offset=0, width=638),
)

TEMPLATES: tuple[Template, ...] = (ODD_3ROWS, EVEN_3ROWS, ODD_2ROWS)


def get_template(code: str, templates: tuple[Template, ...] = TEMPLATES) -> Template:
    for t in templates:
        if t.code == code:
            return t
    raise KeyError(f"unknown template: {code}")
