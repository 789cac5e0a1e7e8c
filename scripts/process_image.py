#!/usr/bin/env python
"""Run a local image through upload validation and transcoding without the web server."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from travelchat.models import UploadOptions
from travelchat.services.transcoder import TranscodeError, transcode
from travelchat.services.validator import MIME_TYPES, UploadCandidate, validate_upload


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate and transcode an image like /api/upload does")
    parser.add_argument("path", type=Path)
    parser.add_argument("--output_size", type=int, default=500)
    parser.add_argument("--output_format", default="webp")
    parser.add_argument("--quality", type=int, default=85)
    parser.add_argument("--crop_square", action="store_true")
    parser.add_argument("--keep_original", action="store_true", help="Skip re-encoding when nothing would change")
    parser.add_argument("--min_width", type=int, default=100)
    parser.add_argument("--min_height", type=int, default=100)
    args = parser.parse_args()

    options = UploadOptions(
        output_size=args.output_size,
        output_format=args.output_format,
        quality=args.quality,
        crop_square=args.crop_square,
        force_reprocess=not args.keep_original,
        min_width=args.min_width,
        min_height=args.min_height,
    )
    extension = args.path.suffix.lstrip(".").lower()
    candidate = UploadCandidate(
        filename=args.path.name,
        content_type=MIME_TYPES.get(extension, ""),
        data=args.path.read_bytes(),
    )

    validation = validate_upload(candidate, options)
    if not validation.valid:
        sys.exit(f"Rejected: {validation.error}")

    try:
        image = transcode(candidate.data, candidate.extension, options)
    except TranscodeError as exc:
        sys.exit(f"Failed: {exc}")

    target = args.path.with_name(f"{args.path.stem}.processed.{image.format}")
    target.write_bytes(image.data)
    print(f"Wrote {target} ({image.width}x{image.height}, {len(image.data)} bytes, reprocessed={image.reprocessed})")


if __name__ == "__main__":
    main()
