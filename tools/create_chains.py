#!/usr/bin/env python3
"""Build sample chains (WAV + .ot pairs) from a YAML/JSON config or a file list."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.chains import ChainJob, ChainSettings, create_chains, run_chain_jobs  # noqa: E402
from octa.config import load_chain_config  # noqa: E402
from octa.errors import OctaError  # noqa: E402
from octa.logging_setup import configure_logging  # noqa: E402


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Concatenate samples into chains with a slice per sample",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML/JSON chain config (runs every chain listed)",
    )
    parser.add_argument(
        "--name",
        default=None,
        help="Chain base name when building from a file list",
    )
    parser.add_argument(
        "-o",
        "--out-dir",
        type=Path,
        default=None,
        help="Output directory when building from a file list",
    )
    parser.add_argument(
        "--bit-depth",
        type=int,
        default=16,
        help="Output bit depth (16 or 24)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every file written",
    )
    parser.add_argument(
        "wavs",
        nargs="*",
        type=Path,
        help="Input WAV files, in slice order",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    if args.config is not None:
        if args.wavs:
            parser.error("pass either --config or a list of WAV files, not both")
        try:
            config = load_chain_config(args.config)
        except OctaError as exc:
            print(f"ERR  {args.config}: {exc}")
            return 1
        written = run_chain_jobs(config.jobs)
        expected = sum((len(job.audio_paths) + 63) // 64 for job in config.jobs)
    else:
        if not args.wavs or args.name is None or args.out_dir is None:
            parser.error("--name, --out-dir and at least one WAV are required without --config")
        job = ChainJob(
            name=args.name,
            audio_paths=list(args.wavs),
            out_dir=args.out_dir,
            settings=ChainSettings(bit_depth=args.bit_depth),
        )
        try:
            written = create_chains(job)
        except OctaError as exc:
            print(f"ERR  {args.name}: {exc}")
            return 1
        expected = len(written)

    for wav_path, ot_path in written:
        print(f"Wrote {wav_path} + {ot_path.name}")
    print(f"{len(written)} chain(s) written")
    return 0 if len(written) == expected else 2


if __name__ == "__main__":
    raise SystemExit(main())
