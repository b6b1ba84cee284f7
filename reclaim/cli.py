# cli.py: Command line for signing and verifying media

import argparse
import json
import logging
import os
import sys

from . import bitplane, video, watermark
from .config import load_config
from .errors import CapacityExceeded, ReclaimError
from .registry import Registry
from .utils import Timer, media_kind, progress_wrapper, validate_media_file
from .verification import verify_image


def _read(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _write(path: str, data: bytes):
    with open(path, "wb") as f:
        f.write(data)


def verify_file(path: str, config, registry=None) -> dict:
    """Verify one image or video file, return the report as a dict"""
    if not validate_media_file(path, config.api.max_file_size_mb):
        raise ValueError(f"Invalid media file: {path}")

    data = _read(path)
    strict = config.verify.strict_registry_check
    if media_kind(path) == "video":
        report = video.verify_video(data, config.video, registry=registry, strict=strict)
    else:
        report = verify_image(data, registry=registry, strict=strict)
    result = report.to_dict()
    result["file"] = path
    return result


def main(argv=None):
    parser = argparse.ArgumentParser(description="Reclaim media provenance CLI")
    parser.add_argument("--config", type=str, help="Config file path")
    parser.add_argument("--registry", type=str, help="Registry database path (enables ledger writes/lookups)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sign_parser = subparsers.add_parser("sign", help="Embed a signature into an image")
    sign_parser.add_argument("input", help="Input image")
    sign_parser.add_argument("output", help="Output PNG")
    sign_parser.add_argument("--creator", required=True, help="Creator id (wallet address or account id)")
    sign_parser.add_argument("--source-type", choices=["authentic", "ai"], default=None)
    sign_parser.add_argument("--prompt", type=str, help="Generation prompt (AI content)")

    sign_video_parser = subparsers.add_parser("sign-video", help="Embed a signature into the first frame of a video")
    sign_video_parser.add_argument("input", help="Input video")
    sign_video_parser.add_argument("output", help="Output video (same container)")
    sign_video_parser.add_argument("--creator", required=True)
    sign_video_parser.add_argument("--source-type", choices=["authentic", "ai"], default=None)

    verify_parser = subparsers.add_parser("verify", help="Verify images or videos")
    verify_parser.add_argument("inputs", nargs="+", help="Files to verify")
    verify_parser.add_argument("--json", action="store_true", help="Print JSON reports")

    capacity_parser = subparsers.add_parser("capacity", help="Check whether an image can carry a signature")
    capacity_parser.add_argument("input", help="Input image")
    capacity_parser.add_argument("--creator", required=True)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    config = load_config(args.config) if args.config else load_config()
    registry = Registry(args.registry) if args.registry else None

    try:
        if args.command == "sign":
            source_type = args.source_type or config.watermark.default_source_type
            with Timer("Image signing"):
                signed = watermark.sign(_read(args.input), args.creator, source_type)
            _write(args.output, signed.data)
            if registry:
                registry.upsert_creator(args.creator)
                registry.record_signature(args.creator, signed.record.content_fingerprint,
                                          signed.record.source_type, args.prompt)
            print(f"✅ Signed image written to {args.output} (fingerprint {signed.record.content_fingerprint})")

        elif args.command == "sign-video":
            source_type = args.source_type or config.watermark.default_source_type
            _, suffix = os.path.splitext(args.output.lower())
            with Timer("Video signing"):
                signed = video.sign_video(_read(args.input), args.creator, source_type,
                                          config.video, suffix=suffix or ".mp4")
            _write(args.output, signed.data)
            if registry:
                registry.upsert_creator(args.creator)
                registry.record_signature(args.creator, signed.record.content_fingerprint,
                                          signed.record.source_type)
            print(f"✅ Signed video written to {args.output}")

        elif args.command == "verify":
            results = []
            for path in progress_wrapper(args.inputs, desc="Verifying", disable=len(args.inputs) < 2):
                results.append(verify_file(path, config, registry))
            if args.json:
                print(json.dumps(results if len(results) > 1 else results[0], indent=2))
            else:
                for result in results:
                    mark = "✅" if result["verified"] else ("⚠️ " if result["tampered"] else "❔")
                    print(f"{mark} {result['file']}: {result['message']}")

        elif args.command == "capacity":
            pixels = watermark.decode_image(_read(args.input))
            needed = watermark.required_bits(args.creator)
            available = bitplane.capacity_bits(pixels)
            side = watermark.minimum_dimension(args.creator)
            height, width = pixels.shape[:2]
            fits = needed <= available
            print(f"Image {width}x{height} holds {available} bits; signature for {args.creator!r} needs {needed} "
                  f"(at least {side}x{side}): {'fits' if fits else 'too small'}")
            if not fits:
                sys.exit(1)

    except CapacityExceeded as e:
        print(f"❌ Image too small: {e}", file=sys.stderr)
        sys.exit(1)
    except (ReclaimError, ValueError, OSError) as e:
        print(f"❌ {args.command} failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
