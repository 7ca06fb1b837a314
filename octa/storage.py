"""Reading and writing project directories.

Every write goes to a sibling temporary file that then replaces the target,
so an interrupted write never leaves a truncated file behind.
"""

from __future__ import annotations

import logging
import os
import shutil
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Type, TypeVar, Union

from .arrangements import ArrangementFile
from .banks import BANK_COUNT, Bank, check_bank_id
from .errors import StorageError, ValidationError
from .projects import Project
from .samples import SampleAttributes


logger = logging.getLogger(__name__)

PROJECT_FILE = "project.work"
SAVED_SUFFIX = ".strd"
WORK_SUFFIX = ".work"
BACKUP_TAG = "octa_backup"
ARRANGEMENT_COUNT = 8

PathLike = Union[str, Path]
R = TypeVar("R")


def project_path(project_dir: PathLike) -> Path:
    return Path(project_dir) / PROJECT_FILE


def bank_path(project_dir: PathLike, bank_id: int, *, saved: bool = False) -> Path:
    check_bank_id(bank_id)
    suffix = SAVED_SUFFIX if saved else WORK_SUFFIX
    return Path(project_dir) / f"bank{bank_id:02d}{suffix}"


def arrangement_path(project_dir: PathLike, arrangement_id: int, *, saved: bool = False) -> Path:
    if not (1 <= arrangement_id <= ARRANGEMENT_COUNT):
        raise ValidationError(f"arrangement id must be in [1, {ARRANGEMENT_COUNT}], got {arrangement_id}")
    suffix = SAVED_SUFFIX if saved else WORK_SUFFIX
    return Path(project_dir) / f"arr{arrangement_id:02d}{suffix}"


def record_type_for(path: PathLike) -> type:
    """Pick the record type for a file from its name."""

    p = Path(path)
    name = p.name.lower()
    if p.suffix.lower() == ".ot":
        return SampleAttributes
    if name.startswith("project") and p.suffix.lower() in (WORK_SUFFIX, SAVED_SUFFIX):
        return Project
    if name.startswith("bank") and p.suffix.lower() in (WORK_SUFFIX, SAVED_SUFFIX):
        return Bank
    if name.startswith("arr") and p.suffix.lower() in (WORK_SUFFIX, SAVED_SUFFIX):
        return ArrangementFile
    raise ValidationError(f"cannot tell the file type of {p.name}")


def ensure_dir(path: PathLike) -> Path:
    target = Path(path)
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(f"cannot create {target}: {exc}") from exc
    return target


def read_bytes(path: PathLike) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise StorageError(f"cannot read {path}: {exc}") from exc


@contextmanager
def atomic_target(path: PathLike) -> Iterator[Path]:
    """Yield a temporary path that replaces ``path`` once the block succeeds."""

    target = Path(path)
    tmp = target.with_name(f".{target.name}.tmp")
    try:
        yield tmp
        os.replace(tmp, target)
    except StorageError:
        _discard(tmp)
        raise
    except OSError as exc:
        _discard(tmp)
        raise StorageError(f"cannot write {target}: {exc}") from exc
    except BaseException:
        _discard(tmp)
        raise


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def write_bytes(path: PathLike, data: bytes) -> None:
    with atomic_target(path) as tmp:
        tmp.write_bytes(data)
    logger.info("wrote %s (%d bytes)", path, len(data))


def read_record(path: PathLike, record_cls: Type[R]) -> R:
    """Decode ``path`` as ``record_cls`` (any type with ``from_bytes``)."""

    record = record_cls.from_bytes(read_bytes(path))  # type: ignore[attr-defined]
    logger.debug("read %s as %s", path, record_cls.__name__)
    return record


def write_record(path: PathLike, record) -> None:
    write_bytes(path, record.to_bytes())


def copy_file(src: PathLike, dest: PathLike) -> None:
    with atomic_target(dest) as tmp:
        shutil.copyfile(src, tmp)
    logger.info("copied %s -> %s", src, dest)


def backup_file(path: PathLike, stamp: Optional[str] = None) -> Optional[Path]:
    """Copy ``path`` next to itself with a timestamped suffix.

    Returns the backup path, or ``None`` when there is nothing to back up.
    """

    source = Path(path)
    if not source.exists():
        return None
    stamp = stamp or datetime.now().strftime("%Y%m%d%H%M%S")
    backup = source.with_name(f"{source.name}.{BACKUP_TAG}_{stamp}")
    copy_file(source, backup)
    return backup


def files_equal(a: PathLike, b: PathLike) -> bool:
    a, b = Path(a), Path(b)
    try:
        if a.stat().st_size != b.stat().st_size:
            return False
    except OSError as exc:
        raise StorageError(f"cannot compare {a} and {b}: {exc}") from exc
    return read_bytes(a) == read_bytes(b)


def create_project_scaffold(project_dir: PathLike, *, overwrite: bool = False) -> Path:
    """Write an empty project: project file, 16 banks and 8 arrangements."""

    target = Path(project_dir)
    if project_path(target).exists() and not overwrite:
        raise StorageError(f"{project_path(target)} already exists")
    ensure_dir(target)
    write_record(project_path(target), Project.default())
    bank_bytes = Bank.default().to_bytes()
    for bank_id in range(1, BANK_COUNT + 1):
        write_bytes(bank_path(target, bank_id), bank_bytes)
    arrangement_bytes = ArrangementFile.default().to_bytes()
    for arrangement_id in range(1, ARRANGEMENT_COUNT + 1):
        write_bytes(arrangement_path(target, arrangement_id), arrangement_bytes)
    logger.info("created project scaffold in %s", target)
    return target
