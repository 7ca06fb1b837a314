#!/usr/bin/env python3
"""Write a .ot next to a WAV: whole-file, equal slices or random slices."""

from __future__ import annotations

import argparse
from pathlib import Path
import random
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.chains import (  # noqa: E402
    create_default_attributes,
    create_equal_slices,
    create_random_slices,
)
from octa.errors import OctaError  # noqa: E402
from octa.logging_setup import configure_logging  # noqa: E402


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create an Octatrack .ot file for a WAV")
    parser.add_argument("wav", type=Path, help="Input WAV file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--equal", type=int, metavar="N", help="N equal-length slices")
    mode.add_argument("--random", type=int, metavar="N", help="N random slices")
    parser.add_argument("--seed", type=int, default=None, help="Seed for --random")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    configure_logging()

    try:
        if args.equal is not None:
            ot_path = create_equal_slices(args.wav, args.equal)
        elif args.random is not None:
            ot_path = create_random_slices(args.wav, args.random, random.Random(args.seed))
        else:
            ot_path = create_default_attributes(args.wav)
    except OctaError as exc:
        print(f"ERR  {args.wav}: {exc}")
        return 1

    print(f"Wrote {ot_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
