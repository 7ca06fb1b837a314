#!/usr/bin/env python3
"""Show which sample slots a bank points at and whether they are loaded."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.errors import OctaError  # noqa: E402
from octa.logging_setup import configure_logging  # noqa: E402
from octa.transfer import list_bank_slot_references  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="List the sample slots used by a bank")
    parser.add_argument("project_dir", type=Path, help="Project directory")
    parser.add_argument("bank", type=int, help="Bank number (1-16)")
    args = parser.parse_args(argv)
    configure_logging()

    try:
        usage = list_bank_slot_references(args.project_dir, args.bank)
    except OctaError as exc:
        print(f"ERR  {exc}")
        return 1

    for entry in usage:
        path = entry.path if entry.loaded else "(not loaded)"
        print(f"{entry.slot_type.value:<6} {entry.slot_id:03d} refs={entry.references:<4} {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
