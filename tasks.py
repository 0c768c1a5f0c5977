# tasks.py
"""
Developer task runner using Invoke.
Run `inv --list` to see tasks.

Key tasks:
  inv scan --input <img|pdf|txt> [--save] [--user alice]
  inv ocr --input <img|pdf>
  inv init-db
  inv test
  inv clean
"""

from invoke import task
from pathlib import Path
import shutil
import sys


REPO = Path(__file__).parent
OCRDIR = REPO / "data" / "interim" / "ocr_text"


def _python():
    """Return the python executable inside the current venv."""
    return sys.executable or "python"


@task(
    help={
        "input": "Path to an image/PDF file",
        "outdir": "Where to write raw OCR .txt (default: data/interim/ocr_text)",
        "lang": "EasyOCR languages, space-separated (default: en)",
        "gpu": "Use GPU for OCR if CUDA available",
        "min_conf": "Min confidence to keep a span (default: 0.45)",
        "dpi": "PDF render DPI (default: 200)",
    }
)
def ocr(c, input, outdir=str(OCRDIR), lang="en", gpu=False, min_conf=0.45, dpi=200):
    """Extract the text of one image/PDF into a .txt file."""
    args = [
        "-m",
        "ocr.reader",
        "--input",
        f'"{input}"',
        "--outdir",
        f'"{outdir}"',
        "--lang",
        *lang.split(),
        "--min_conf",
        str(min_conf),
        "--dpi",
        str(dpi),
    ]
    if gpu:
        args.append("--gpu")
    c.run(f'"{_python()}" ' + " ".join(args), pty=False)


@task(
    help={
        "input": "Receipt file (image/pdf/txt)",
        "save": "Store the receipt as an expense instead of a dry run",
        "user": "User id the expense belongs to (default: default)",
        "db": "SQLite database path (default: from config.toml)",
    }
)
def scan(c, input, save=False, user="default", db=None):
    """Scan one receipt: OCR -> parse -> (optionally) save as an expense."""
    args = ["--user", f'"{user}"']
    if db:
        args += ["--db", f'"{db}"']
    args += ["scan", f'"{input}"']
    if not save:
        args.append("--dry-run")
    c.run(f'"{_python()}" tracker.py ' + " ".join(args), pty=False)


@task(help={"db": "SQLite database path (default: from config.toml)"})
def init_db(c, db=None):
    """Create or migrate the database schema."""
    prefix = f'--db "{db}" ' if db else ""
    c.run(f'"{_python()}" tracker.py {prefix}db --init --check', pty=False)


@task
def test(c):
    """Run unit tests with pytest."""
    c.run(f'"{_python()}" -m pytest -q', pty=False)


@task
def clean(c):
    """Delete interim OCR output."""
    if OCRDIR.exists():
        shutil.rmtree(OCRDIR)
        print(f"Removed {OCRDIR}")
    OCRDIR.mkdir(parents=True, exist_ok=True)
