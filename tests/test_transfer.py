from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.banks import Bank
from octa.errors import CapacityError, ConflictError, StorageError, ValidationError
from octa.projects import SLOT_CAPACITY, Project, SampleSlot, SlotType
from octa.storage import bank_path, create_project_scaffold, project_path, read_record, write_record
from octa.transfer import (
    TransferJob,
    list_bank_slot_references,
    plan_bank_transfer,
    run_transfer_jobs,
    transfer_bank,
)


def _project_with_slots(project_dir: Path, slots) -> Path:
    create_project_scaffold(project_dir)
    project = read_record(project_path(project_dir), Project)
    for slot in slots:
        project.add_slot(slot)
    write_record(project_path(project_dir), project)
    return project_dir


def _static(slot_id: int, path: str, **kwargs) -> SampleSlot:
    return SampleSlot(slot_type=SlotType.STATIC, slot_id=slot_id, path=path, **kwargs)


def _snapshot(project_dir: Path) -> dict:
    return {p.name: p.read_bytes() for p in sorted(project_dir.iterdir()) if p.is_file()}


def _load(project_dir: Path, bank_id: int = 1):
    return (
        read_record(project_path(project_dir), Project),
        read_record(bank_path(project_dir, bank_id), Bank),
    )


def test_identical_slots_share_one_destination_slot(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "kick.wav"), _static(2, "kick.wav")])
    (src / "kick.wav").write_bytes(b"RIFF-kick")
    dest = _project_with_slots(tmp_path / "DEST", [])

    result = transfer_bank(src, 1, dest, 3, stamp="20261019")

    plan = result.plan
    assert len(plan.assignments) == 1
    assert plan.assignments[0].source_ids == [1, 2]
    assert plan.assignments[0].dest_id == 1
    assert len(plan.new_slots) == 1
    assert (dest / "kick.wav").read_bytes() == b"RIFF-kick"

    project, bank = _load(dest, 3)
    loaded = project.slots_of(SlotType.STATIC)
    assert [(s.slot_id, s.path) for s in loaded] == [(1, "kick.wav")]
    # tracks 1 and 2 both point at the shared slot, the unloaded tracks at the reserved one
    slots = [m.static_slot_id for m in bank.parts_unsaved[0].machine_slots]
    assert slots[:2] == [0, 0]
    reserved = plan.inactive_slots[SlotType.STATIC]
    assert reserved == SLOT_CAPACITY
    assert set(slots[2:]) == {SLOT_CAPACITY - 1}
    assert project.slot(SlotType.STATIC, reserved) is None
    assert bank.referenced_slots()[SlotType.FLEX] == {plan.inactive_slots[SlotType.FLEX]}


def test_different_settings_are_different_slots(tmp_path: Path) -> None:
    src = _project_with_slots(
        tmp_path / "SRC",
        [_static(1, "kick.wav"), _static(2, "kick.wav", gain=60)],
    )
    (src / "kick.wav").write_bytes(b"RIFF-kick")
    dest = _project_with_slots(tmp_path / "DEST", [])

    plan = transfer_bank(src, 1, dest, 1).plan

    assert [a.dest_id for a in plan.assignments] == [1, 2]
    assert [c.destination.name for c in plan.copies] == ["kick.wav"]
    assert plan.hazards == []
    project = read_record(project_path(dest), Project)
    assert project.slot(SlotType.STATIC, 2).gain == 60


def test_non_empty_destination_bank_is_left_alone(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "kick.wav")])
    (src / "kick.wav").write_bytes(b"RIFF-kick")
    dest = _project_with_slots(tmp_path / "DEST", [])
    bank = read_record(bank_path(dest, 2), Bank)
    bank.part_names[0].name = "LIVE"
    write_record(bank_path(dest, 2), bank)
    before = _snapshot(dest)

    with pytest.raises(ConflictError):
        transfer_bank(src, 1, dest, 2)
    assert _snapshot(dest) == before

    result = transfer_bank(src, 1, dest, 2, force=True, stamp="1")
    assert result.bank_file == bank_path(dest, 2)
    assert read_record(bank_path(dest, 2), Bank).part_names[0].name == "ONE"


def test_capacity_error_changes_nothing(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "kick.wav")])
    (src / "kick.wav").write_bytes(b"RIFF-kick")
    dest = _project_with_slots(
        tmp_path / "DEST", [_static(i, f"d{i}.wav") for i in range(1, SLOT_CAPACITY + 1)]
    )
    before = _snapshot(dest)

    with pytest.raises(CapacityError):
        transfer_bank(src, 1, dest, 1)
    assert _snapshot(dest) == before


def test_running_out_midway_changes_nothing(tmp_path: Path) -> None:
    # every static slot the bank references is loaded, two distinct samples between them
    src = _project_with_slots(
        tmp_path / "SRC",
        [_static(i, "a.wav" if i <= 4 else "b.wav") for i in range(1, 9)],
    )
    (src / "a.wav").write_bytes(b"RIFF-a")
    (src / "b.wav").write_bytes(b"RIFF-b")
    dest = _project_with_slots(
        tmp_path / "DEST", [_static(i, f"d{i}.wav") for i in range(1, SLOT_CAPACITY)]
    )
    assert read_record(project_path(dest), Project).free_slot_ids(SlotType.STATIC) == [SLOT_CAPACITY]
    before = _snapshot(dest)

    with pytest.raises(CapacityError):
        transfer_bank(src, 1, dest, 1)
    assert _snapshot(dest) == before
    assert not (dest / "a.wav").exists()


def test_existing_destination_slot_is_reused(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "kick.wav")])
    (src / "kick.wav").write_bytes(b"RIFF-kick")
    dest = _project_with_slots(tmp_path / "DEST", [_static(5, "kick.wav")])
    (dest / "kick.wav").write_bytes(b"RIFF-kick")

    plan = transfer_bank(src, 1, dest, 1).plan

    assert plan.assignments[0].reused
    assert plan.assignments[0].dest_id == 5
    assert plan.new_slots == []
    assert plan.copies == []
    _, bank = _load(dest)
    assert bank.parts_saved[0].machine_slots[0].static_slot_id == 4


def test_differing_destination_file_is_a_hazard(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "kick.wav")])
    (src / "kick.wav").write_bytes(b"RIFF-kick")
    dest = _project_with_slots(tmp_path / "DEST", [])
    (dest / "kick.wav").write_bytes(b"RIFF-other")

    plan = transfer_bank(src, 1, dest, 1).plan

    assert [h.destination for h in plan.hazards] == [dest / "kick.wav"]
    assert plan.copies == []
    assert (dest / "kick.wav").read_bytes() == b"RIFF-other"
    project = read_record(project_path(dest), Project)
    assert project.slot(SlotType.STATIC, 1).path == "kick.wav"


def test_same_name_from_two_folders_is_a_hazard(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "a/kick.wav"), _static(2, "b/kick.wav")])
    for sub, payload in (("a", b"one"), ("b", b"two")):
        (src / sub).mkdir()
        (src / sub / "kick.wav").write_bytes(payload)
    dest = _project_with_slots(tmp_path / "DEST", [])

    plan = transfer_bank(src, 1, dest, 1).plan

    assert len(plan.copies) == 1
    assert len(plan.hazards) == 1
    assert (dest / "kick.wav").read_bytes() == b"one"


def test_sidecar_attributes_are_copied(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "loop.wav")])
    (src / "loop.wav").write_bytes(b"RIFF-loop")
    (src / "loop.ot").write_bytes(b"FORM-ot")
    dest = _project_with_slots(tmp_path / "DEST", [])

    transfer_bank(src, 1, dest, 1)

    assert (dest / "loop.ot").read_bytes() == b"FORM-ot"


def test_missing_sample_file_is_storage_error(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "gone.wav")])
    dest = _project_with_slots(tmp_path / "DEST", [])
    before = _snapshot(dest)
    with pytest.raises(StorageError):
        transfer_bank(src, 1, dest, 1)
    assert _snapshot(dest) == before


def test_backups_are_written(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [])
    dest = _project_with_slots(tmp_path / "DEST", [])
    bank_before = bank_path(dest, 4).read_bytes()
    project_before = project_path(dest).read_bytes()

    result = transfer_bank(src, 1, dest, 4, stamp="20261019")

    names = sorted(p.name for p in result.backups)
    assert names == ["bank04.work.octa_backup_20261019", "project.work.octa_backup_20261019"]
    assert (dest / "bank04.work.octa_backup_20261019").read_bytes() == bank_before
    assert (dest / "project.work.octa_backup_20261019").read_bytes() == project_before


def test_unsupported_version_is_rejected(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [])
    project = read_record(project_path(src), Project)
    project.meta.set("VERSION", "18")
    write_record(project_path(src), project)
    dest = _project_with_slots(tmp_path / "DEST", [])
    with pytest.raises(ValidationError):
        transfer_bank(src, 1, dest, 1)


def test_planning_leaves_inputs_untouched(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "kick.wav")])
    (src / "kick.wav").write_bytes(b"RIFF-kick")
    dest = _project_with_slots(tmp_path / "DEST", [])
    src_project, src_bank = _load(src)
    dest_project, dest_bank = _load(dest)
    src_bank_bytes = src_bank.to_bytes()
    dest_project_bytes = dest_project.to_bytes()

    plan = plan_bank_transfer(src_project, src_bank, src, dest_project, dest_bank, dest)

    assert src_bank.to_bytes() == src_bank_bytes
    assert dest_project.to_bytes() == dest_project_bytes
    assert plan.project.slot(SlotType.STATIC, 1) is not None
    assert plan.mapping[(SlotType.STATIC, 1)] == 1
    assert not (dest / "kick.wav").exists()


def test_batch_runner_continues_after_failure(tmp_path: Path, caplog) -> None:
    src = _project_with_slots(tmp_path / "SRC", [])
    dest = _project_with_slots(tmp_path / "DEST", [])
    jobs = [
        TransferJob(tmp_path / "MISSING", 1, dest, 1),
        TransferJob(src, 1, dest, 2),
    ]
    results = run_transfer_jobs(jobs)
    assert [r.bank_file for r in results] == [bank_path(dest, 2)]
    assert "failed" in caplog.text


def test_batch_keeps_empty_tracks_empty(tmp_path: Path) -> None:
    first = _project_with_slots(tmp_path / "A", [_static(1, "kick.wav")])
    (first / "kick.wav").write_bytes(b"RIFF-kick")
    second = _project_with_slots(tmp_path / "B", [_static(1, "snare.wav")])
    (second / "snare.wav").write_bytes(b"RIFF-snare")
    dest = _project_with_slots(tmp_path / "D", [])

    results = run_transfer_jobs([TransferJob(first, 1, dest, 1), TransferJob(second, 1, dest, 2)])

    assert len(results) == 2
    project = read_record(project_path(dest), Project)
    assert [(s.slot_id, s.path) for s in project.slots_of(SlotType.STATIC)] == [
        (1, "kick.wav"),
        (2, "snare.wav"),
    ]
    reserved = results[0].plan.inactive_slots[SlotType.STATIC]
    assert project.slot(SlotType.STATIC, reserved) is None
    bank_one = read_record(bank_path(dest, 1), Bank)
    slots = [m.static_slot_id for m in bank_one.parts_unsaved[0].machine_slots]
    assert slots[0] == 0
    assert set(slots[1:]) == {reserved - 1}


def test_list_bank_slot_references(tmp_path: Path) -> None:
    src = _project_with_slots(tmp_path / "SRC", [_static(1, "kick.wav")])
    bank = read_record(bank_path(src, 1), Bank)
    bank.patterns[0].audio_tracks[0].plocks[3].static_slot_id = 0
    write_record(bank_path(src, 1), bank)

    usage = list_bank_slot_references(src, 1)

    assert [(u.slot_type, u.slot_id) for u in usage[:2]] == [(SlotType.STATIC, 1), (SlotType.STATIC, 2)]
    assert usage[0].path == "kick.wav"
    assert usage[0].references == 9
    assert not usage[1].loaded
    assert usage[-1].slot_type is SlotType.FLEX
    assert len(usage) == 16
