#!/usr/bin/env python3
"""Remove watermarks from a single video file with a terminal progress bar."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import tqdm  # noqa: E402
from loguru import logger  # noqa: E402

from unmark.core.config import get_settings  # noqa: E402
from unmark.core.logging import configure_logging  # noqa: E402
from unmark.pipeline.exceptions import PipelineFailed  # noqa: E402
from unmark.schemas.job import WatermarkRemovalConfig  # noqa: E402
from unmark.schemas.progress import ProgressEvent  # noqa: E402
from unmark.services.watermark_removal_service import WatermarkRemovalService  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("input", type=Path, help="Source video file.")
    parser.add_argument(
        "output",
        type=Path,
        nargs="?",
        help="Output file or directory (defaults to the input's directory).",
    )
    parser.add_argument("--batch-size", type=int, default=None, help="Frames per detection batch.")
    parser.add_argument("--min-confidence", type=float, default=None, help="Drop regions below this confidence.")
    parser.add_argument("--max-bbox-percent", type=float, default=None, help="Drop regions covering more of the frame.")
    parser.add_argument("--inpaint-backend", choices=("http", "cv2"), default=None)
    parser.add_argument("--overwrite", action="store_true", help="Replace an existing output file.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()
    settings = get_settings()

    config = WatermarkRemovalConfig(
        batch_size=args.batch_size,
        min_confidence=args.min_confidence,
        max_bbox_percent=args.max_bbox_percent,
        inpaint_backend=args.inpaint_backend,
        overwrite=args.overwrite,
    )
    service = WatermarkRemovalService(settings)

    with tqdm.tqdm(total=100, desc="Removing watermarks", unit="%") as pbar:

        def on_progress(event: ProgressEvent) -> None:
            pbar.set_postfix_str(event.message, refresh=False)
            pbar.update(event.percent - pbar.n)

        try:
            result = service.process_file(
                args.input,
                args.output or args.input.parent,
                config=config,
                on_progress=on_progress,
            )
        except (PipelineFailed, FileNotFoundError, FileExistsError, ValueError) as exc:
            logger.error(f"{exc}")
            return 1

    print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
