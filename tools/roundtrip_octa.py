#!/usr/bin/env python3
"""Round-trip Octatrack data files through the record codecs."""

from __future__ import annotations

import argparse
import glob
from pathlib import Path
import sys
from typing import List, Optional, Sequence, Tuple

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.errors import OctaError  # noqa: E402
from octa.logging_setup import configure_logging  # noqa: E402
from octa.storage import record_type_for  # noqa: E402


def _expand(patterns: Sequence[str]) -> List[Path]:
    # keyed on the resolved path so overlapping globs report each file once
    found = {}
    for pattern in patterns:
        hits = sorted(glob.glob(pattern, recursive=True)) or [pattern]
        for hit in hits:
            path = Path(hit)
            if path.is_file():
                found.setdefault(path.resolve(), path)
    return list(found.values())


def _check(path: Path) -> Tuple[bool, str]:
    try:
        record_cls = record_type_for(path)
        original = path.read_bytes()
        rebuilt = record_cls.from_bytes(original).to_bytes()
    except (OctaError, OSError) as exc:
        return False, f"ERR  {path}: {exc}"

    if rebuilt == original:
        return True, f"OK   {path} ({record_cls.__name__})"
    if len(rebuilt) != len(original):
        return False, f"FAIL {path}: size mismatch (orig={len(original)} new={len(rebuilt)})"
    offset = next(i for i, (a, b) in enumerate(zip(original, rebuilt)) if a != b)
    return False, (
        f"FAIL {path}: diff at 0x{offset:06X} "
        f"(orig=0x{original[offset]:02X} new=0x{rebuilt[offset]:02X})"
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Decode and re-encode project, bank, arrangement and .ot files; report mismatches."
    )
    parser.add_argument("paths", nargs="+", help="Files or glob patterns (quote wildcards).")
    args = parser.parse_args(argv)
    configure_logging()

    targets = _expand(args.paths)
    if not targets:
        parser.error("no files matched")

    ok = True
    for path in targets:
        passed, line = _check(path)
        print(line)
        ok = ok and passed
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
