"""
Christmas Baby Collage — command line

Usage:
  python -m christmas_collage.main baby1.jpg baby2.jpg baby3.jpg
  python -m christmas_collage.main photos/*.jpg --mode batched --batch-size 3
  python -m christmas_collage.main photos/*.jpg --template tree.jpg --zip
"""

from __future__ import annotations

import argparse
import logging
import mimetypes
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.prompt import Prompt
from rich.rule import Rule

from .compositor import compose_collage, export_collage, verify_template
from .config import CONCURRENCY_MODES, Settings, load_settings
from .credentials import EnvCredentialProvider
from .errors import MissingCredentialError, RunError, UploadError
from .models import RawPhoto
from .scenarios import SCENARIO_COUNT
from .session import MAX_PHOTOS, MIN_PHOTOS, build_session
from .zip_exporter import create_collage_zip

load_dotenv()

console = Console()


# ── Credentials ───────────────────────────────────────────────────────────────

class PromptCredentialProvider(EnvCredentialProvider):
    """Env-backed provider that can ask for the key interactively."""

    def __init__(self) -> None:
        super().__init__()
        self._entered: Optional[str] = None

    def request_credential(self) -> None:
        console.print("[yellow]A Gemini API key is required to generate images.[/yellow]")
        value = Prompt.ask("🔑 Gemini API key", password=True, console=console).strip()
        self._entered = value or None

    def get_credential(self) -> Optional[str]:
        return self._entered or super().get_credential()


# ── CLI ───────────────────────────────────────────────────────────────────────

def positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {parsed}")
    return parsed


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Turn baby photos into a Christmas-tree collage of 10 AI portraits"
    )
    parser.add_argument(
        "photos",
        nargs="+",
        type=Path,
        help=f"{MIN_PHOTOS} to {MAX_PHOTOS} reference photos of the baby",
    )
    parser.add_argument(
        "--mode",
        choices=CONCURRENCY_MODES,
        default=None,
        help="sequential = one call at a time; batched = groups; parallel = worker pool (default)",
    )
    parser.add_argument("--batch-size", type=positive_int, default=None, help="Group size for --mode batched")
    parser.add_argument("--workers", type=positive_int, default=None, help="Worker bound for --mode parallel")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output directory (default: outputs/<timestamp>)",
    )
    parser.add_argument("--template", type=Path, default=None, help="Custom background image")
    parser.add_argument("--zip", action="store_true", help="Also bundle collage + portraits as ZIP")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.mode:
        settings.concurrency = args.mode
    if args.batch_size is not None:
        settings.batch_size = args.batch_size
    if args.workers is not None:
        settings.max_workers = args.workers
    return settings


def read_photos(paths: List[Path]) -> List[RawPhoto]:
    photos = []
    for path in paths:
        if not path.is_file():
            raise FileNotFoundError(f"Photo not found: {path}")
        media_type = mimetypes.guess_type(path.name)[0] or ""
        photos.append(RawPhoto(name=path.name, data=path.read_bytes(), media_type=media_type))
    return photos


# ── Main ──────────────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    settings = apply_overrides(load_settings(), args)
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    output_dir = args.output or settings.output_dir / timestamp

    console.print(Rule("[bold sky_blue1]Christmas Baby Collage[/bold sky_blue1]"))
    console.print(
        f"  Photos: [bold]{len(args.photos)}[/bold]  |  "
        f"Mode: [bold]{settings.concurrency}[/bold]  |  "
        f"Output: [bold]{output_dir}[/bold]"
    )

    try:
        photos = read_photos(args.photos)
        if args.template:
            verify_template(args.template)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1

    session = build_session(settings, PromptCredentialProvider())

    # ── Step 1: Preprocess ────────────────────────────────────────────────────
    console.print("\n[bold]Step 1/3 — Preparing photos[/bold]")
    try:
        references, failures = session.prepare(photos)
    except UploadError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1
    for failure in failures:
        console.print(f"  [yellow]⚠ {failure}[/yellow]")
    console.print(f"  [green]✓[/green] {len(references)} photo(s) ready")

    # ── Step 2: Generate ──────────────────────────────────────────────────────
    console.print("\n[bold]Step 2/3 — Painting portraits (Gemini)[/bold]")
    t0 = time.time()
    try:
        with Progress(
            TextColumn("  [sky_blue1]❄ Magic sprinkled[/sky_blue1]"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("generate", total=SCENARIO_COUNT)
            results = session.generate(
                references,
                on_progress=lambda count: progress.update(task, completed=count),
            )
    except MissingCredentialError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        console.print("Set GEMINI_API_KEY in your environment or .env file.")
        return 1
    except RunError as e:
        console.print(f"[bold red]Brrr, it's cold![/bold red] {e}")
        return 1

    succeeded = sum(1 for r in results if r.succeeded)
    console.print(
        f"  [green]✓ {succeeded}/{len(results)} portrait(s) — {time.time() - t0:.1f}s[/green]"
    )

    # ── Step 3: Compose ───────────────────────────────────────────────────────
    console.print("\n[bold]Step 3/3 — Decorating the tree (Pillow)[/bold]")
    canvas = compose_collage(results, template=args.template)
    collage_path = export_collage(canvas, output_dir)
    zip_path = create_collage_zip(collage_path, results, output_dir) if args.zip else None

    lines = [f"Collage saved to: [bold]{collage_path}[/bold]"]
    if zip_path:
        lines.append(f"Bundle: [bold]{zip_path}[/bold]")
    console.print(
        Panel(
            "\n".join(lines),
            title="[bold green]Your Christmas keepsake is ready[/bold green]",
            border_style="green",
        )
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
