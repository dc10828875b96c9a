import argparse
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from outliner.errors import OutlinerError
from outliner.models.image_reference import ImageReference
from outliner.models.pipeline_config import PipelineConfig
from outliner.pipeline.outline_renderer import render_and_store
from outliner.repositories.blob_repository import BlobRepository
from outliner.services.image_service import ImageService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="outliner-batch",
        description="Render outline versions of many images and store the results.",
    )
    parser.add_argument("references", nargs="+", help="image URLs or storage keys under SOURCE_ROOT")
    parser.add_argument("--format", default="png", choices=["png", "jpeg", "svg"])
    parser.add_argument("--target-width", type=int, default=None)
    parser.add_argument("--threshold", type=int, default=None)
    parser.add_argument("--no-invert", action="store_true", help="keep light edges on a dark background")
    parser.add_argument("--source-root", default=None, help="directory storage keys resolve against")
    parser.add_argument("--results-dir", default=None, help="where rendered outlines are written")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
        datefmt='%H:%M:%S'
    )
    args = build_parser().parse_args(argv)

    body = {"format": args.format, "invert": not args.no_invert}
    if args.target_width is not None:
        body["target_width"] = args.target_width
    if args.threshold is not None:
        body["threshold"] = args.threshold

    try:
        config = PipelineConfig.from_request(body)
    except OutlinerError as err:
        print(f"Invalid options: {err.message}", file=sys.stderr)
        return 2

    image_service = ImageService(
        blob_repository=BlobRepository(source_root=args.source_root, results_root=args.results_dir)
    )

    failures = 0
    for i, locator in enumerate(args.references, 1):
        reference = ImageReference(locator)
        try:
            stored = render_and_store(reference, config, image_service=image_service)
        except OutlinerError as err:
            failures += 1
            print(f"[{i}/{len(args.references)}] FAILED {reference} ({err.kind}): {err.message}")
            continue
        print(f"[{i}/{len(args.references)}] {reference} → {stored}")

    print(f"Done: {len(args.references) - failures} succeeded, {failures} failed")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
