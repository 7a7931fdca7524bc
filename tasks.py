"""Invoke tasks for developing Prune.

Tasks shell out to `uv` for environment management and tooling, and provide a
helper that lays out a small folder-backed photo library for manual testing of
the `prune` CLI.
"""

from __future__ import annotations

import shlex
import shutil
from collections.abc import Sequence
from datetime import datetime, timedelta
from pathlib import Path

from invoke import Collection, Context, task

PROJECT_ROOT = Path(__file__).parent
DIST_DIR = PROJECT_ROOT / "dist"
SAMPLE_LIBRARY = PROJECT_ROOT / "sample-library"


def _uv(ctx: Context, args: Sequence[str], *, echo: bool = True) -> None:
    """Run ``uv`` with ``args`` inside the project environment.

    Args:
        ctx: Invoke execution context.
        args: Arguments appended after the `uv` executable.
        echo: Whether to echo the command before running it.
    """
    ctx.run(shlex.join(("uv", *args)), echo=echo, pty=True)


@task
def sync(ctx: Context, dev: bool = True) -> None:
    """Synchronize the virtual environment, including dev extras by default."""
    args = ["sync"]
    if dev:
        args.extend(["--extra", "dev"])
    _uv(ctx, args)


@task(help={"clean": "Remove existing artifacts from dist/ before building."})
def build(ctx: Context, clean: bool = False) -> None:
    """Build source and wheel distributions into `dist/`."""
    if clean and DIST_DIR.exists():
        shutil.rmtree(DIST_DIR)
    _uv(ctx, ["build"])


@task(
    help={
        "k": "pytest -k expression for test selection.",
        "path": "Path or module to test (defaults to tests/).",
        "options": "Additional CLI flags forwarded verbatim to pytest.",
    }
)
def tests(ctx: Context, k: str = "", path: str = "tests", options: str = "") -> None:
    """Run the pytest suite.

    Args:
        ctx: Invoke execution context.
        k: `pytest -k` expression to select tests.
        path: Target path for pytest discovery.
        options: Extra CLI arguments appended to the pytest call.
    """
    args: list[str] = ["run", "pytest"]
    if k:
        args.extend(["-k", k])
    if options:
        args.extend(shlex.split(options))
    args.append(path)
    _uv(ctx, args)


@task(help={"fix": "Apply auto-fixes where possible (ruff --fix)."})
def lint(ctx: Context, fix: bool = False) -> None:
    """Check formatting and lint rules with Ruff."""
    _uv(ctx, ["run", "ruff", "format", "--check", "src", "tests"])
    args = ["run", "ruff", "check", "src", "tests"]
    if fix:
        args.append("--fix")
    _uv(ctx, args)


@task
def mypy(ctx: Context) -> None:
    """Type-check the package."""
    _uv(ctx, ["run", "mypy", "src"])


@task
def ci(ctx: Context) -> None:
    """Run lint, type checks, and tests as CI does."""
    ctx.invoke(lint)
    ctx.invoke(mypy)
    ctx.invoke(tests)


@task(
    help={
        "path": "Directory to create (defaults to ./sample-library).",
        "months": "Number of consecutive months to populate.",
        "per_month": "Photos generated per month.",
    }
)
def sample_library(
    ctx: Context, path: str = "", months: int = 3, per_month: int = 4
) -> None:
    """Generate a folder library of dated JPEGs for trying out the CLI.

    Photos carry EXIF capture dates so they land in month buckets; every other
    photo is filed under a `Trips` album and the first photo of each month is
    named like a screenshot.
    """
    from PIL import Image

    root = Path(path) if path else SAMPLE_LIBRARY
    root.mkdir(parents=True, exist_ok=True)
    start = datetime.now().replace(day=1, hour=9, minute=0, second=0, microsecond=0)
    created = 0
    for month in range(months):
        first_of_month = (start - timedelta(days=31 * month)).replace(day=1)
        for index in range(per_month):
            taken = first_of_month + timedelta(days=index * 3, hours=index)
            name = f"Screenshot {month}.jpg" if index == 0 else f"IMG_{month:02d}{index:02d}.jpg"
            target = root / "Trips" / name if index % 2 else root / name
            target.parent.mkdir(parents=True, exist_ok=True)
            exif = Image.Exif()
            exif[0x0132] = taken.strftime("%Y:%m:%d %H:%M:%S")
            color = ((month * 70) % 256, (index * 50) % 256, 160)
            Image.new("RGB", (640, 480), color).save(target, format="JPEG", exif=exif)
            created += 1
    print(f"Created {created} photo(s) under {root}")


namespace = Collection(sync, build, tests, lint, mypy, ci, sample_library)
