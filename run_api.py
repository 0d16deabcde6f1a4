"""Helper launcher to run the upload API without installing the package.

Usage (from project root):
  SIGPUB_SIGNERS_FILE=./allowed_signers python run_api.py
"""
from __future__ import annotations

import pathlib
import sys

ROOT = pathlib.Path(__file__).parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sigpub.sigpub_cli import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main(["serve", *sys.argv[1:]]))
