#!/usr/bin/env python3
"""Copy banks between projects, bringing their samples along."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.config import load_transfer_config  # noqa: E402
from octa.errors import OctaError  # noqa: E402
from octa.logging_setup import configure_logging  # noqa: E402
from octa.transfer import TransferJob, TransferResult, run_transfer_jobs, transfer_bank  # noqa: E402


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Copy a bank (and the samples it uses) into another project",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML/JSON bank copy config")
    parser.add_argument("--src", type=Path, default=None, help="Source project directory")
    parser.add_argument("--src-bank", type=int, default=None, help="Source bank (1-16)")
    parser.add_argument("--dest", type=Path, default=None, help="Destination project directory")
    parser.add_argument("--dest-bank", type=int, default=None, help="Destination bank (1-16)")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite a destination bank that is not empty",
    )
    return parser


def _report(result: TransferResult) -> None:
    plan = result.plan
    print(f"Wrote {result.bank_file}")
    print(f"  slots: {len(plan.assignments)} used, {len(plan.new_slots)} new")
    for assignment in plan.assignments:
        state = "reused" if assignment.reused else "new"
        sources = ",".join(str(s) for s in assignment.source_ids)
        print(
            f"  {assignment.slot_type.value:<6} {sources} -> {assignment.dest_id:03d} "
            f"({state}) {assignment.path}"
        )
    for hazard in plan.hazards:
        print(f"  HAZARD {hazard.destination} exists and differs from {hazard.source}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging()

    if args.config is not None:
        try:
            jobs = load_transfer_config(args.config).jobs
        except OctaError as exc:
            print(f"ERR  {args.config}: {exc}")
            return 1
        results = run_transfer_jobs(jobs)
        for result in results:
            _report(result)
        return 0 if len(results) == len(jobs) else 1

    if None in (args.src, args.src_bank, args.dest, args.dest_bank):
        parser.error("--src, --src-bank, --dest and --dest-bank are required without --config")
    job = TransferJob(args.src, args.src_bank, args.dest, args.dest_bank, args.force)
    try:
        result = transfer_bank(job.src_project, job.src_bank, job.dest_project, job.dest_bank, force=job.force)
    except OctaError as exc:
        print(f"ERR  {exc}")
        return 1
    _report(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
