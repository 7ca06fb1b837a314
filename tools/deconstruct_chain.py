#!/usr/bin/env python3
"""Split sliced chains back into one WAV per slice."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.chains import DeconstructJob, run_deconstruct_jobs  # noqa: E402
from octa.config import load_deconstruct_config  # noqa: E402
from octa.errors import OctaError  # noqa: E402
from octa.logging_setup import configure_logging  # noqa: E402


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Write each slice of a chain to its own WAV")
    parser.add_argument("--config", type=Path, default=None, help="YAML/JSON deconstruct config")
    parser.add_argument("--sample", type=Path, default=None, help="Chain WAV file")
    parser.add_argument("--ot", type=Path, default=None, help=".ot file (default: next to the WAV)")
    parser.add_argument("-o", "--out-dir", type=Path, default=None, help="Output directory")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging()

    if args.config is not None:
        try:
            jobs = load_deconstruct_config(args.config).jobs
        except OctaError as exc:
            print(f"ERR  {args.config}: {exc}")
            return 1
    else:
        if args.sample is None or args.out_dir is None:
            parser.error("--sample and --out-dir are required without --config")
        ot_path = args.ot if args.ot is not None else args.sample.with_suffix(".ot")
        jobs = [DeconstructJob(audio_path=args.sample, attributes_path=ot_path, out_dir=args.out_dir)]

    written = run_deconstruct_jobs(jobs)
    for path in written:
        print(f"Wrote {path}")
    print(f"{len(written)} file(s) written")
    return 0 if written else 1


if __name__ == "__main__":
    raise SystemExit(main())
