from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console

from .core.errors import DecodeFailed, UnsupportedMediaType
from .ingest.naming import content_digest
from .ingest.reconcile import reconcile_images
from .ingest.transcoder import ImageProfile, codec_support, normalize
from .ingest.uploads import resolve_media_type

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """Run a carlot developer command.

    Args:
        argv: Arguments to parse instead of ``sys.argv``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    """Build the parser for the image pipeline commands."""
    parser = argparse.ArgumentParser(description="carlot image pipeline developer CLI")
    parser.add_argument("--check", action="store_true", help="Report which image codecs this installation supports")

    subparsers = parser.add_subparsers(dest="command")

    normalize_parser = subparsers.add_parser("normalize", help="Normalize one image and print a JSON summary")
    normalize_parser.add_argument("--file", required=True, help="Path to the source image")
    normalize_parser.add_argument("--media-type", default=None, help="Declared media type (defaults to the file extension)")
    normalize_parser.add_argument("--out", default=None, help="Where to write the normalized image")
    normalize_parser.add_argument("--max-width", type=int, default=ImageProfile().max_width, help="Maximum output width")
    normalize_parser.add_argument("--quality", type=int, default=ImageProfile().quality, help="WEBP quality factor")
    normalize_parser.set_defaults(func=_cmd_normalize)

    order_parser = subparsers.add_parser("reorder", help="Preview the image order produced by an edit")
    order_parser.add_argument("--current", required=True, help="Comma-separated current references")
    order_parser.add_argument("--requested", default="", help="Comma-separated requested order")
    order_parser.add_argument("--appended", default="", help="Comma-separated newly ingested references")
    order_parser.set_defaults(func=_cmd_reorder)
    return parser


def _cmd_normalize(args: argparse.Namespace) -> None:
    """Run the transcoder on a single file.

    Args:
        args: The command-line arguments.
    """
    source = Path(args.file).expanduser().resolve()
    if not source.exists():
        console.print(f"[red]File not found: {source}[/]")
        sys.exit(2)

    profile = ImageProfile(max_width=args.max_width, quality=args.quality, skip_max_width=args.max_width)
    raw = source.read_bytes()
    try:
        media_type = args.media_type or resolve_media_type(None, source.name)
        image = normalize(raw, media_type, profile)
    except UnsupportedMediaType as exc:
        console.print(f"[red]Unsupported media type:[/] {exc}")
        sys.exit(2)
    except DecodeFailed as exc:
        console.print(f"[red]Decode failed:[/] {exc}")
        sys.exit(3)

    summary = {
        "source": str(source),
        "media_type": media_type,
        "outcome": image.outcome.value,
        "width": image.width,
        "height": image.height,
        "input_bytes": len(raw),
        "output_bytes": len(image.payload),
        "sha256": content_digest(image.payload),
    }
    if args.out:
        out_path = Path(args.out).expanduser().resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(image.payload)
        summary["output"] = str(out_path)
    console.print_json(data=summary)


def _cmd_reorder(args: argparse.Namespace) -> None:
    console.print_json(
        data=reconcile_images(_split(args.current), _split(args.requested), _split(args.appended))
    )


def _split(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _run_environment_check() -> None:
    """Check that the decoders and the WEBP encoder are available."""
    results = codec_support()

    console.rule("[bold]Image codecs")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing codecs detected. Reinstall Pillow and pillow-heif with their wheels.[/]")
        sys.exit(1)
    console.print("[green]All image codecs available.[/]")


if __name__ == "__main__":
    main()
