"""Template matching by border edge density.

Each template is a hypothesis about where the entry boxes sit on the page. A
box border that falls on blank paper samples almost no ink, so the template
whose borders collect the fewest edge pixels is the best fit.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from .edges import ImageSource, build_edge_map
from .errors import ImageDecodeError
from .templates import TEMPLATES
from .types import MatchResult, Rect, Template

logger = logging.getLogger(__name__)

EDGE_INTENSITY_THRESHOLD = 10
ACCEPT_THRESHOLD = 0.05


@dataclass(frozen=True)
class BorderSample:
    edge_pixels: int
    samples: int

    @property
    def score(self) -> float:
        return self.edge_pixels / self.samples if self.samples > 0 else 0.0


def sample_slot_border(edges: np.ndarray, slot: Rect, *, edge_threshold: int = EDGE_INTENSITY_THRESHOLD) -> BorderSample:
    """Count edge pixels along the four borders of a slot, clipped to the image.

    Top/bottom rows give one sample per covered column; left/right columns one
    sample per covered row. A border line outside the image is not sampled.
    """
    h, w = edges.shape[:2]
    edge_pixels = 0
    samples = 0

    x0, x1 = max(slot.x, 0), min(slot.x + slot.width, w)
    if x1 > x0:
        for y in (slot.y, slot.y + slot.height - 1):
            if 0 <= y < h:
                row = edges[y, x0:x1]
                edge_pixels += int(np.count_nonzero(row > edge_threshold))
                samples += int(row.size)

    y0, y1 = max(slot.y, 0), min(slot.y + slot.height, h)
    if y1 > y0:
        for x in (slot.x, slot.x + slot.width - 1):
            if 0 <= x < w:
                col = edges[y0:y1, x]
                edge_pixels += int(np.count_nonzero(col > edge_threshold))
                samples += int(col.size)

    return BorderSample(edge_pixels=edge_pixels, samples=samples)


def score_template(edges: np.ndarray, template: Template, *, edge_threshold: int = EDGE_INTENSITY_THRESHOLD) -> float:
    """Mean border edge density over the template's slots (0.0 when it has none)."""
    if not template.slots:
        return 0.0
    slot_scores = [sample_slot_border(edges, s, edge_threshold=edge_threshold).score for s in template.slots]
    # fsum is correctly rounded, so the result does not depend on summation order.
    return math.fsum(slot_scores) / len(slot_scores)


Scorer = Callable[[np.ndarray, Template], float]


def select_template(
    edges: np.ndarray,
    templates: Sequence[Template] = TEMPLATES,
    *,
    accept_threshold: float = ACCEPT_THRESHOLD,
    scorer: Scorer | None = None,
) -> MatchResult:
    """Pick the lowest-scoring template; reject it when score > accept_threshold.

    Ties keep catalog order (sorted() is stable), so the earlier template wins.
    """
    score_fn = scorer or score_template
    scored = [(t, float(score_fn(edges, t))) for t in templates]
    all_scores = tuple((t.code, s) for t, s in scored)
    for code, s in all_scores:
        logger.debug("template %s: score=%.6f", code, s)

    if not scored:
        return MatchResult(template=None, score=None, scores=all_scores)

    best, best_score = sorted(scored, key=lambda ts: ts[1])[0]
    if best_score > accept_threshold:
        logger.warning(
            "no template matched below threshold %s (best: %s score=%.6f)", accept_threshold, best.code, best_score
        )
        return MatchResult(template=None, score=best_score, scores=all_scores)

    logger.info("template matched: %s (score=%.6f)", best.code, best_score)
    return MatchResult(template=best, score=best_score, scores=all_scores)


def match_template(
    source: ImageSource,
    templates: Sequence[Template] = TEMPLATES,
    *,
    edge_threshold: int = EDGE_INTENSITY_THRESHOLD,
    accept_threshold: float = ACCEPT_THRESHOLD,
) -> MatchResult:
    """Classify a page image. Never raises: any failure is reported as no match."""
    try:
        edges = build_edge_map(source)
        return select_template(
            edges,
            templates,
            accept_threshold=accept_threshold,
            scorer=lambda e, t: score_template(e, t, edge_threshold=edge_threshold),
        )
    except ImageDecodeError as e:
        logger.warning("template matching skipped: %s", e)
    except Exception:
        logger.exception("template matching failed")
    return MatchResult(template=None, score=None)
