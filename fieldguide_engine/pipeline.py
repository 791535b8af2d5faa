from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from .config import EngineConfig
from .errors import RecordValidationError, RetryExhausted
from .limiter import RateLimiter
from .matcher import match_template
from .page_provider import list_page_images
from .paths import ERRORS_JSONL, PagePaths, page_paths, record_error
from .recognizer import Recognizer
from .retry import RetryPolicy, run_with_retry
from .splitter import save_split_crops, split_by_template
from .templates import TEMPLATES
from .types import UNKNOWN_NAME, Entry, PageRecord, SplitResult, Template
from .utils import write_json
from .validator import is_valid_layout_file, validate_page_record

logger = logging.getLogger(__name__)

PAGE_SUCCEEDED = "succeeded"
PAGE_SKIPPED = "skipped"
PAGE_FAILED = "failed"


@dataclass
class PageOutcome:
    page: str
    status: str  # succeeded|skipped|failed
    attempts: int = 0
    error: str | None = None
    layout_path: str | None = None


@dataclass
class RunSummary:
    outcomes: list[PageOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def processed(self) -> int:
        return self._count(PAGE_SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self._count(PAGE_SKIPPED)

    @property
    def errored(self) -> int:
        return self._count(PAGE_FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "skipped": self.skipped,
            "errored": self.errored,
            "failures": [{"page": o.page, "error": o.error} for o in self.outcomes if o.status == PAGE_FAILED],
        }


@dataclass
class RunOptions:
    input_path: str
    output_dir: str | None = None
    retry_count: int | None = None  # overrides config retry.max_attempts
    interval_s: float | None = None  # overrides config rate_limit.interval_s
    save_crops: bool | None = None  # overrides config output.save_crops


class LayoutPipeline:
    """Pages -> template match -> split -> caption recognition -> <base>_layout.json.

    Pages are handled strictly one after another, and so are the recognition
    calls within a page; the rate limiter's clock is shared by all of them.
    """

    def __init__(
        self,
        cfg: EngineConfig,
        opts: RunOptions,
        recognizer: Recognizer,
        *,
        limiter: RateLimiter | None = None,
        templates: Sequence[Template] = TEMPLATES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cfg = cfg
        self.opts = opts
        self.recognizer = recognizer
        self.templates = tuple(templates)
        self.sleep = sleep

        interval = opts.interval_s if opts.interval_s is not None else float(cfg.rate_limit.get("interval_s", 2.0))
        self.limiter = limiter or RateLimiter(interval, sleep=sleep)

        attempts = opts.retry_count if opts.retry_count is not None else int(cfg.retry.get("max_attempts", 3))
        self.retry_policy = RetryPolicy(
            max_attempts=attempts,
            base_delay_s=float(cfg.retry.get("base_delay_s", 5.0)),
            max_delay_s=float(cfg.retry.get("max_delay_s", 60.0)),
        )
        self.save_crops = opts.save_crops if opts.save_crops is not None else bool(cfg.output.get("save_crops", True))
        self.edge_threshold = int(cfg.matching.get("edge_threshold", 10))
        self.accept_threshold = float(cfg.matching.get("accept_threshold", 0.05))

    def _errors_path(self, paths: PagePaths) -> Path:
        return paths.out_dir / ERRORS_JSONL

    def _recognize_entry(self, paths: PagePaths, index: int, split: SplitResult) -> Entry:
        self.limiter.wait()
        try:
            rec = self.recognizer.recognize(split.caption_png)
        except Exception as e:
            # Isolated per entry: the rest of the page still gets recognized.
            logger.error("%s: recognition failed for slot %d: %s", paths.page_id, index, e)
            record_error(self._errors_path(paths), page_id=paths.page_id, stage="recognize", message=f"slot_{index}: {e}")
            return Entry(
                name=UNKNOWN_NAME,
                photo_areas=[split.photo_area],
                caption_areas=[split.caption_area],
                caption_text="",
            )

        return Entry(
            name=rec.name.strip() or UNKNOWN_NAME,
            photo_areas=[split.photo_area],
            caption_areas=[split.caption_area],
            caption_text=rec.text,
        )

    def analyze_page(self, paths: PagePaths) -> PageRecord:
        """One attempt: match, split, recognize. CropError propagates."""
        match = match_template(
            paths.image,
            self.templates,
            edge_threshold=self.edge_threshold,
            accept_threshold=self.accept_threshold,
        )
        if match.template is None:
            logger.warning("%s: no layout template matched, writing empty record", paths.page_id)
            return PageRecord(page=paths.page_id, entries=[])

        splits = split_by_template(paths.image, match.template)
        if self.save_crops:
            save_split_crops(paths, splits)

        entries = [self._recognize_entry(paths, i, s) for i, s in enumerate(splits)]
        return PageRecord(page=paths.page_id, entries=entries)

    def process_page(self, image: str | Path) -> PageOutcome:
        paths = page_paths(image, self.opts.output_dir)
        page_id = paths.page_id

        if is_valid_layout_file(paths.layout_json):
            logger.info("skipping %s: valid layout file already exists", page_id)
            return PageOutcome(page=page_id, status=PAGE_SKIPPED, layout_path=str(paths.layout_json))

        errors_path = self._errors_path(paths)
        attempts = 0

        def attempt() -> PageRecord:
            nonlocal attempts
            attempts += 1
            return self.analyze_page(paths)

        def on_failure(n: int, e: Exception) -> None:
            record_error(errors_path, page_id=page_id, stage="page", message=f"attempt {n}: {e}")

        try:
            record = run_with_retry(attempt, self.retry_policy, label=page_id, sleep=self.sleep, on_failure=on_failure)
        except RetryExhausted as e:
            logger.error("failed to process %s: %s", page_id, e.last_error)
            return PageOutcome(page=page_id, status=PAGE_FAILED, attempts=e.attempts, error=str(e.last_error))

        data = record.to_dict()
        ok, reason = validate_page_record(data)
        if not ok:
            err = RecordValidationError(reason or "invalid")
            logger.error("failed to process %s: %s", page_id, err)
            record_error(errors_path, page_id=page_id, stage="validate", message=str(err))
            return PageOutcome(page=page_id, status=PAGE_FAILED, attempts=attempts, error=str(err))

        write_json(paths.layout_json, data)
        logger.info("processed %s -> %s (%d entries)", page_id, paths.layout_json.name, len(record.entries))
        return PageOutcome(page=page_id, status=PAGE_SUCCEEDED, attempts=attempts, layout_path=str(paths.layout_json))

    def run(self) -> RunSummary:
        images = list_page_images(self.opts.input_path)
        logger.info("found %d PNG files in %s", len(images), self.opts.input_path)

        summary = RunSummary()
        for image in images:
            try:
                outcome = self.process_page(image)
            except Exception as e:
                logger.exception("unexpected failure on %s", image.name)
                paths = page_paths(image, self.opts.output_dir)
                record_error(self._errors_path(paths), page_id=paths.page_id, stage="page", message=str(e))
                outcome = PageOutcome(page=paths.page_id, status=PAGE_FAILED, error=str(e))
            summary.outcomes.append(outcome)

        logger.info(
            "extract-layout completed: total=%d processed=%d skipped=%d errored=%d",
            summary.total,
            summary.processed,
            summary.skipped,
            summary.errored,
        )
        if summary.errored:
            logger.warning("some pages failed to process; see errors.jsonl for details")
        return summary
