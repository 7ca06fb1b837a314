"""Bank files (``bankNN.work`` / ``bankNN.strd``, 636113 bytes).

Besides the record declaration this module knows where a bank points at
project sample slots: the static/flex slot parameter locks on every audio
trig, and the machine slot assignments of every part.  Bank-side slot ids are
0-based while the project file numbers slots from 1; everything leaving this
module uses the project's 1-based numbering.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Set, Tuple

from .codec import Record, array, blob, magic, text
from .errors import ValidationError
from .parts import Part
from .patterns import NO_LOCK, Pattern
from .projects import SLOT_CAPACITY, SlotType


logger = logging.getLogger(__name__)

BANK_HEADER = b"FORM\x00\x00\x00\x00DPS1BANK\x00\x00\x00\x00\x00\x17"
PATTERNS_PER_BANK = 16
PARTS_PER_BANK = 4
BANK_COUNT = 16
DEFAULT_PART_NAMES = ("ONE", "TWO", "THREE", "FOUR")

SlotKey = Tuple[SlotType, int]


def bank_letter(bank_id: int) -> str:
    """``1`` -> ``"A"`` .. ``16`` -> ``"P"``."""

    check_bank_id(bank_id)
    return chr(ord("A") + bank_id - 1)


def check_bank_id(bank_id: int) -> None:
    if not isinstance(bank_id, int) or not (1 <= bank_id <= BANK_COUNT):
        raise ValidationError(f"bank id must be in [1, {BANK_COUNT}], got {bank_id!r}")


@dataclass
class PartName(Record):
    name: str = text(7)


@dataclass(frozen=True)
class SlotReference:
    """One place in a bank that points at a project sample slot."""

    slot_type: SlotType
    slot_id: int
    location: str


@dataclass
class Bank(Record):
    header: bytes = magic(BANK_HEADER)
    patterns: List[Pattern] = array(Pattern, PATTERNS_PER_BANK)
    parts_unsaved: List[Part] = array(Part, PARTS_PER_BANK, Part.for_index)
    parts_saved: List[Part] = array(Part, PARTS_PER_BANK, Part.for_index)
    unknown: bytes = blob(5)
    part_names: List[PartName] = array(
        PartName, PARTS_PER_BANK, lambda idx: PartName(DEFAULT_PART_NAMES[idx])
    )
    checksum: bytes = blob(2)

    def is_default(self, ignore=("checksum",)) -> bool:  # type: ignore[override]
        return super().is_default(ignore=ignore)

    def _part_groups(self) -> Iterator[Tuple[str, List[Part]]]:
        yield "unsaved", self.parts_unsaved
        yield "saved", self.parts_saved

    def slot_references(self) -> List[SlotReference]:
        """Every sample slot reference, recorder buffers excluded.

        Parameter locks come first (pattern, track, step order), then part
        machine assignments.
        """

        refs: List[SlotReference] = []
        for pattern_idx, pattern in enumerate(self.patterns):
            for track, step, lock in pattern.iter_audio_plocks():
                where = f"pattern {pattern_idx + 1} track {track + 1} step {step + 1}"
                if lock.static_slot_id != NO_LOCK:
                    refs.append(SlotReference(SlotType.STATIC, lock.static_slot_id + 1, where))
                if lock.flex_slot_id != NO_LOCK and lock.flex_slot_id < SLOT_CAPACITY:
                    refs.append(SlotReference(SlotType.FLEX, lock.flex_slot_id + 1, where))

        for label, parts in self._part_groups():
            for part_idx, part in enumerate(parts):
                for track, slots in enumerate(part.machine_slots):
                    where = f"part {part_idx + 1} ({label}) track {track + 1}"
                    refs.append(SlotReference(SlotType.STATIC, slots.static_slot_id + 1, where))
                    if slots.flex_slot_id < SLOT_CAPACITY:
                        refs.append(SlotReference(SlotType.FLEX, slots.flex_slot_id + 1, where))
        return refs

    def referenced_slots(self) -> Dict[SlotType, Set[int]]:
        found: Dict[SlotType, Set[int]] = {SlotType.STATIC: set(), SlotType.FLEX: set()}
        for ref in self.slot_references():
            found[ref.slot_type].add(ref.slot_id)
        return found

    def remap_slots(self, mapping: Dict[SlotKey, int]) -> int:
        """Rewrite slot references through ``mapping`` (1-based ids both sides).

        References missing from ``mapping`` are left alone.  Returns the number
        of fields changed.
        """

        for (slot_type, _), new_id in mapping.items():
            if not (1 <= new_id <= SLOT_CAPACITY):
                raise ValidationError(f"cannot remap to {slot_type.value} slot {new_id}")

        def _lookup(slot_type: SlotType, raw: int) -> int:
            new_id = mapping.get((slot_type, raw + 1))
            return raw if new_id is None else new_id - 1

        changed = 0
        for pattern in self.patterns:
            for _, _, lock in pattern.iter_audio_plocks():
                if lock.static_slot_id != NO_LOCK:
                    new_raw = _lookup(SlotType.STATIC, lock.static_slot_id)
                    changed += new_raw != lock.static_slot_id
                    lock.static_slot_id = new_raw
                if lock.flex_slot_id != NO_LOCK and lock.flex_slot_id < SLOT_CAPACITY:
                    new_raw = _lookup(SlotType.FLEX, lock.flex_slot_id)
                    changed += new_raw != lock.flex_slot_id
                    lock.flex_slot_id = new_raw

        for _, parts in self._part_groups():
            for part in parts:
                for slots in part.machine_slots:
                    new_raw = _lookup(SlotType.STATIC, slots.static_slot_id)
                    changed += new_raw != slots.static_slot_id
                    slots.static_slot_id = new_raw
                    if slots.flex_slot_id < SLOT_CAPACITY:
                        new_raw = _lookup(SlotType.FLEX, slots.flex_slot_id)
                        changed += new_raw != slots.flex_slot_id
                        slots.flex_slot_id = new_raw

        logger.debug("remapped %d slot reference fields", changed)
        return changed
