from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from .config import EngineConfig, load_config
from .exporters.apkg import DEFAULT_DECK_NAME, export_apkg
from .overlay import generate_layout_images
from .pipeline import LayoutPipeline, RunOptions
from .recognizer import build_recognizer
from .utils import load_json
from .validator import validate_page_record

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_CONFIG = Path("config") / "default.json"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="fieldguide_engine")
    p.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    ex = sub.add_parser("extract-layout", help="Match, split and recognize field guide pages")
    ex.add_argument("input", help="Page PNG or folder of page PNGs")
    ex.add_argument("--retry", type=int, default=None, help="Attempts per page (default: config retry.max_attempts)")
    ex.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Minimum seconds between recognition calls (default: config rate_limit.interval_s)",
    )
    ex.add_argument("--backend", default=None, choices=["gemini", "easyocr"], help="Recognition backend")
    ex.add_argument("--config", default=None, help="Config path (default: config/default.json when present)")
    ex.add_argument("--output-dir", default=None, help="Where to write layout files and crops (default: next to pages)")
    ex.add_argument("--no-save-crops", action="store_true", help="Do not write photo/caption crop PNGs")

    gi = sub.add_parser("generate-layout-image", help="Draw layout areas onto page images")
    gi.add_argument("input", help="Page PNG or folder of page PNGs")
    gi.add_argument("--layout-dir", default=None, help="Folder holding <base>_layout.json (default: next to pages)")
    gi.add_argument("--output-dir", default=None, help="Folder for <base>_layout.png (default: layout dir)")

    ga = sub.add_parser("generate-apkg", help="Build an Anki package from layout files and crops")
    ga.add_argument("src_dir", help="Folder with <base>_layout.json and crop PNGs")
    ga.add_argument("apkg_file", help="Output .apkg path")
    ga.add_argument("--deck-name", default=DEFAULT_DECK_NAME)

    va = sub.add_parser("validate", help="Check layout JSON files")
    va.add_argument("files", nargs="+", help="<base>_layout.json files")

    return p


def _load_cfg(path: str | None) -> EngineConfig:
    if path is None:
        # Without --config, the shipped default is optional; built-in defaults apply.
        return load_config(DEFAULT_CONFIG if DEFAULT_CONFIG.is_file() else None)
    if not Path(path).is_file():
        raise FileNotFoundError(f"config file not found: {path}")
    return load_config(path)


def cmd_extract_layout(args: argparse.Namespace) -> int:
    try:
        cfg = _load_cfg(args.config)
        backend = args.backend or str(cfg.recognition.get("backend", "gemini"))
        recognizer = build_recognizer(backend, cfg.recognition)
    except (OSError, ValueError, RuntimeError) as e:
        print(f"config_error: {e}")
        return 1

    if args.retry is not None and args.retry < 1:
        print("config_error: --retry must be >= 1")
        return 1
    if args.interval is not None and args.interval < 0:
        print("config_error: --interval must be >= 0")
        return 1

    opts = RunOptions(
        input_path=args.input,
        output_dir=args.output_dir,
        retry_count=args.retry,
        interval_s=args.interval,
        save_crops=False if args.no_save_crops else None,
    )
    try:
        summary = LayoutPipeline(cfg=cfg, opts=opts, recognizer=recognizer).run()
    except ValueError as e:
        print(f"input_error: {e}")
        return 1

    print(f"processed={summary.processed} skipped={summary.skipped} errored={summary.errored}")
    return 0


def cmd_generate_layout_image(args: argparse.Namespace) -> int:
    try:
        summary = generate_layout_images(args.input, layout_dir=args.layout_dir, output_dir=args.output_dir)
    except ValueError as e:
        print(f"input_error: {e}")
        return 1

    for r in summary.results:
        if r.error:
            print(f"{r.image}: {r.error}: {r.message}")
    print(f"succeeded={summary.succeeded} failed={summary.failed}")
    return 0


def cmd_generate_apkg(args: argparse.Namespace) -> int:
    try:
        stats = export_apkg(src_dir=args.src_dir, out_path=args.apkg_file, deck_name=args.deck_name)
        print(
            f"exported={stats.cards_exported} skipped_missing_image={stats.cards_skipped_missing_image} "
            f"invalid_pages={stats.pages_invalid}"
        )
        return 0
    except Exception as e:
        print(f"export_failed: {e}")
        return 1


def cmd_validate(args: argparse.Namespace) -> int:
    failures = 0
    for f in args.files:
        try:
            ok, reason = validate_page_record(load_json(f))
        except (OSError, ValueError) as e:
            ok, reason = False, f"cannot read: {e}"
        if ok:
            print(f"{f}: OK")
        else:
            failures += 1
            print(f"{f}: {reason}")
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    if args.command == "extract-layout":
        return cmd_extract_layout(args)

    if args.command == "generate-layout-image":
        return cmd_generate_layout_image(args)

    if args.command == "generate-apkg":
        return cmd_generate_apkg(args)

    if args.command == "validate":
        return cmd_validate(args)

    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())
