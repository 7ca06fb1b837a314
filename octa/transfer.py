"""Copy a bank between projects, carrying the samples it uses.

Planning and applying are separate.  :func:`plan_bank_transfer` works on
decoded records only and returns a :class:`TransferPlan` holding the remapped
bank, the updated destination project and the sample files to copy; it raises
before anything is modified when the destination bank is in use or the
destination project runs out of slots.  :func:`transfer_bank` loads a pair of
project directories, plans, backs up the destination files and writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .banks import Bank, SlotKey, bank_letter
from .errors import CapacityError, ConflictError, OctaError, StorageError
from .projects import Project, SampleSlot, SlotType
from .storage import (
    backup_file,
    bank_path,
    copy_file,
    files_equal,
    project_path,
    read_record,
    write_record,
)


logger = logging.getLogger(__name__)

ATTRIBUTES_SUFFIX = ".ot"

PathLike = Union[str, Path]
Identity = Tuple[SlotType, Path, Tuple[object, ...]]


@dataclass(frozen=True)
class CopyInstruction:
    source: Path
    destination: Path


@dataclass(frozen=True)
class FileHazard:
    """A destination file that already exists with different content.

    The file is not overwritten; the slot still points at it.
    """

    source: Path
    destination: Path


@dataclass
class SlotAssignment:
    slot_type: SlotType
    source_ids: List[int]
    dest_id: int
    path: str
    reused: bool


@dataclass
class TransferPlan:
    bank: Bank
    project: Project
    mapping: Dict[SlotKey, int] = field(default_factory=dict)
    assignments: List[SlotAssignment] = field(default_factory=list)
    inactive_slots: Dict[SlotType, int] = field(default_factory=dict)
    copies: List[CopyInstruction] = field(default_factory=list)
    hazards: List[FileHazard] = field(default_factory=list)

    @property
    def new_slots(self) -> List[SlotAssignment]:
        return [a for a in self.assignments if not a.reused]


@dataclass
class TransferResult:
    plan: TransferPlan
    bank_file: Path
    project_file: Path
    backups: List[Path] = field(default_factory=list)


@dataclass(frozen=True)
class TransferJob:
    src_project: Path
    src_bank: int
    dest_project: Path
    dest_bank: int
    force: bool = False


def _identity(slot: SampleSlot, resolved: Path) -> Identity:
    return (slot.slot_type, resolved, slot.settings_key())


def _is_loaded(slot: Optional[SampleSlot]) -> bool:
    return slot is not None and bool(slot.path)


def _take_free(free: Dict[SlotType, List[int]], slot_type: SlotType, *, highest: bool = False) -> int:
    if not free[slot_type]:
        raise CapacityError(f"destination project has no free {slot_type.value} slot left")
    return free[slot_type].pop() if highest else free[slot_type].pop(0)


def plan_bank_transfer(
    src_project: Project,
    src_bank: Bank,
    src_dir: PathLike,
    dest_project: Project,
    dest_bank: Bank,
    dest_dir: PathLike,
    *,
    force: bool = False,
) -> TransferPlan:
    """Work out everything a bank copy changes without touching the inputs."""

    if not force and not dest_bank.is_default():
        raise ConflictError("destination bank is not empty; pass force to overwrite it")

    src_dir = Path(src_dir)
    dest_dir = Path(dest_dir)
    project = dest_project.clone()
    bank = src_bank.clone()

    # Group referenced source slots by identity, first reference first.
    groups: Dict[Identity, List[SampleSlot]] = {}
    inactive: Dict[SlotType, List[int]] = {SlotType.STATIC: [], SlotType.FLEX: []}
    for slot_type, slot_ids in src_bank.referenced_slots().items():
        for slot_id in sorted(slot_ids):
            slot = src_project.slot(slot_type, slot_id)
            if not _is_loaded(slot):
                inactive[slot_type].append(slot_id)
                continue
            groups.setdefault(_identity(slot, slot.resolved_path(src_dir)), []).append(slot)

    existing: Dict[Identity, int] = {}
    for slot in project.slots:
        if _is_loaded(slot) and not slot.is_recorder_buffer:
            existing.setdefault(_identity(slot, slot.resolved_path(dest_dir)), slot.slot_id)

    free = {slot_type: project.free_slot_ids(slot_type) for slot_type in SlotType}
    plan = TransferPlan(bank=bank, project=project)

    # Inactive references park on the highest free id, which later allocations reach last.
    for slot_type, slot_ids in inactive.items():
        if not slot_ids:
            continue
        reserved = _take_free(free, slot_type, highest=True)
        plan.inactive_slots[slot_type] = reserved
        for slot_id in slot_ids:
            plan.mapping[(slot_type, slot_id)] = reserved

    planned_names: Dict[str, Path] = {}
    new_slots: List[SampleSlot] = []

    for (slot_type, source_path, settings), members in groups.items():
        template = members[0]
        target = dest_dir / source_path.name
        dest_id = existing.get((slot_type, source_path, settings))
        if dest_id is None:
            dest_id = existing.get((slot_type, target.resolve(), settings))
        reused = dest_id is not None
        if dest_id is None:
            dest_id = _take_free(free, slot_type)
            new_slots.append(replace(template, slot_id=dest_id, path=target.name, extra=list(template.extra)))
            _plan_copy(plan, source_path, target, planned_names)
            sidecar = source_path.with_suffix(ATTRIBUTES_SUFFIX)
            if sidecar.exists():
                _plan_copy(plan, sidecar, target.with_suffix(ATTRIBUTES_SUFFIX), planned_names)
            existing[(slot_type, source_path, settings)] = dest_id

        for member in members:
            plan.mapping[(slot_type, member.slot_id)] = dest_id
        plan.assignments.append(
            SlotAssignment(
                slot_type=slot_type,
                source_ids=[m.slot_id for m in members],
                dest_id=dest_id,
                path=template.path,
                reused=reused,
            )
        )

    # Nothing above modified the inputs; from here on only the clones change.
    for slot in new_slots:
        project.add_slot(slot)
    bank.remap_slots(plan.mapping)

    logger.debug(
        "planned transfer: %d slots (%d new), %d copies, %d hazards",
        len(plan.assignments),
        len(new_slots),
        len(plan.copies),
        len(plan.hazards),
    )
    return plan


def _plan_copy(plan: TransferPlan, source: Path, target: Path, planned: Dict[str, Path]) -> None:
    if not source.is_file():
        raise StorageError(f"sample file {source} does not exist")
    earlier = planned.get(target.name)
    if earlier is not None:
        if earlier != source:
            plan.hazards.append(FileHazard(source=source, destination=target))
        return
    planned[target.name] = source
    if source.resolve() == target.resolve():
        return
    if target.exists():
        if not files_equal(source, target):
            logger.warning("%s already exists with different content; not overwriting", target)
            plan.hazards.append(FileHazard(source=source, destination=target))
        return
    plan.copies.append(CopyInstruction(source=source, destination=target))


def _load_project(project_dir: Path) -> Project:
    project = read_record(project_path(project_dir), Project)
    project.check_version()
    return project


def transfer_bank(
    src_dir: PathLike,
    src_bank_id: int,
    dest_dir: PathLike,
    dest_bank_id: int,
    *,
    force: bool = False,
    stamp: Optional[str] = None,
) -> TransferResult:
    """Copy bank ``src_bank_id`` of one project into ``dest_bank_id`` of another."""

    src_dir = Path(src_dir)
    dest_dir = Path(dest_dir)
    dest_bank_file = bank_path(dest_dir, dest_bank_id)
    dest_project_file = project_path(dest_dir)

    plan = plan_bank_transfer(
        _load_project(src_dir),
        read_record(bank_path(src_dir, src_bank_id), Bank),
        src_dir,
        _load_project(dest_dir),
        read_record(dest_bank_file, Bank),
        dest_dir,
        force=force,
    )

    stamp = stamp or datetime.now().strftime("%Y%m%d%H%M%S")
    backups = [b for b in (backup_file(dest_bank_file, stamp), backup_file(dest_project_file, stamp)) if b]

    for copy in plan.copies:
        copy_file(copy.source, copy.destination)
    write_record(dest_bank_file, plan.bank)
    write_record(dest_project_file, plan.project)

    for hazard in plan.hazards:
        logger.warning("file hazard: %s differs from %s", hazard.destination, hazard.source)
    logger.info(
        "copied bank %s of %s to bank %s of %s",
        bank_letter(src_bank_id),
        src_dir,
        bank_letter(dest_bank_id),
        dest_dir,
    )
    return TransferResult(
        plan=plan,
        bank_file=dest_bank_file,
        project_file=dest_project_file,
        backups=backups,
    )


def run_transfer_jobs(jobs: Sequence[TransferJob]) -> List[TransferResult]:
    """Run jobs in order; later jobs see the files written by earlier ones."""

    results: List[TransferResult] = []
    for job in jobs:
        try:
            results.append(
                transfer_bank(
                    job.src_project,
                    job.src_bank,
                    job.dest_project,
                    job.dest_bank,
                    force=job.force,
                )
            )
        except OctaError as exc:
            logger.error(
                "bank copy %s:%s -> %s:%s failed: %s",
                job.src_project,
                job.src_bank,
                job.dest_project,
                job.dest_bank,
                exc,
            )
    return results


@dataclass(frozen=True)
class SlotUsage:
    slot_type: SlotType
    slot_id: int
    path: Optional[str]
    references: int

    @property
    def loaded(self) -> bool:
        return bool(self.path)


def list_bank_slot_references(project_dir: PathLike, bank_id: int) -> List[SlotUsage]:
    """Summarise which project slots bank ``bank_id`` points at."""

    project_dir = Path(project_dir)
    project = read_record(project_path(project_dir), Project)
    bank = read_record(bank_path(project_dir, bank_id), Bank)

    counts: Dict[SlotKey, int] = {}
    for ref in bank.slot_references():
        key = (ref.slot_type, ref.slot_id)
        counts[key] = counts.get(key, 0) + 1

    order = {SlotType.STATIC: 0, SlotType.FLEX: 1}
    usage: List[SlotUsage] = []
    for (slot_type, slot_id), n_refs in sorted(counts.items(), key=lambda kv: (order[kv[0][0]], kv[0][1])):
        slot = project.slot(slot_type, slot_id)
        usage.append(
            SlotUsage(
                slot_type=slot_type,
                slot_id=slot_id,
                path=slot.path if _is_loaded(slot) else None,
                references=n_refs,
            )
        )
    return usage
