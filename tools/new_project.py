#!/usr/bin/env python3
"""Create an empty project directory (project file, 16 banks, 8 arrangements)."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.errors import OctaError  # noqa: E402
from octa.logging_setup import configure_logging  # noqa: E402
from octa.storage import create_project_scaffold  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Write a default Octatrack project")
    parser.add_argument("project_dir", type=Path, help="Directory to create")
    parser.add_argument("--overwrite", action="store_true", help="Replace an existing project")
    args = parser.parse_args(argv)
    configure_logging()

    try:
        target = create_project_scaffold(args.project_dir, overwrite=args.overwrite)
    except OctaError as exc:
        print(f"ERR  {exc}")
        return 1
    print(f"Created project in {target}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
