"""Arrangement files (``arrNN.work`` / ``arrNN.strd``, 11336 bytes).

A file holds two copies of the arrangement: the current (unsaved) state and
the state as of the last explicit save.  Each block carries up to 256 rows of
22 bytes; the first byte of a row selects how the remaining 21 are read.
Rows beyond ``n_rows`` are placeholders and are kept byte-for-byte.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence, Union

from .codec import Record, array, blob, magic, nested, text, u8, u8_array
from .errors import FormatError, ValidationError


ARRANGEMENT_HEADER = b"FORM\x00\x00\x00\x00DPS1ARRA\x00\x00\x00\x00\x00\x06"
DEFAULT_ARRANGEMENT_NAME = "OCTATOOLS-ARR  "
MAX_ROWS = 256
ROW_DATA_SIZE = 21
MAX_REPETITIONS = 63
MAX_LOOP_COUNT = 100
REMINDER_LENGTH = 15

ROW_PATTERN = 0
ROW_LOOP = 1
ROW_REMINDER = 2
ROW_TYPES = (ROW_PATTERN, ROW_LOOP, ROW_REMINDER)


@dataclass
class PatternRow:
    """Play ``pattern_id`` (0 = A01 .. 255 = P16) ``repetitions`` + 1 times."""

    pattern_id: int
    repetitions: int = 0
    mute_mask: int = 0
    tempo_1: int = 0
    tempo_2: int = 0
    scene_a: int = 0
    scene_b: int = 0
    offset: int = 0
    length: int = 0
    midi_transpose: List[int] = field(default_factory=lambda: [0] * 8)

    def encode(self) -> List[int]:
        if not (0 <= self.repetitions <= MAX_REPETITIONS):
            raise ValidationError(f"pattern row repetitions must be in [0, {MAX_REPETITIONS}], got {self.repetitions}")
        if len(self.midi_transpose) != 8:
            raise ValidationError("pattern row needs 8 MIDI transpose values")
        data = [0] * ROW_DATA_SIZE
        data[0] = self.pattern_id
        data[1] = self.repetitions
        data[3] = self.mute_mask
        data[5] = self.tempo_1
        data[6] = self.tempo_2
        data[7] = self.scene_a
        data[8] = self.scene_b
        data[10] = self.offset
        data[12] = self.length
        data[13:21] = list(self.midi_transpose)
        return data

    @classmethod
    def decode(cls, data: Sequence[int]) -> "PatternRow":
        return cls(
            pattern_id=data[0],
            repetitions=data[1],
            mute_mask=data[3],
            tempo_1=data[5],
            tempo_2=data[6],
            scene_a=data[7],
            scene_b=data[8],
            offset=data[10],
            length=data[12],
            midi_transpose=list(data[13:21]),
        )


@dataclass
class LoopRow:
    """Loop, jump or halt.

    ``loop_count`` 0 with a later target is a jump, 0 with its own row as
    target is a halt, anything else loops back to ``row_target``.
    """

    loop_count: int = 0
    row_target: int = 0

    def encode(self) -> List[int]:
        if not (0 <= self.loop_count <= MAX_LOOP_COUNT):
            raise ValidationError(f"loop count must be in [0, {MAX_LOOP_COUNT}], got {self.loop_count}")
        data = [0] * ROW_DATA_SIZE
        data[0] = self.loop_count
        data[1] = self.row_target
        return data

    @classmethod
    def decode(cls, data: Sequence[int]) -> "LoopRow":
        return cls(loop_count=data[0], row_target=data[1])


@dataclass
class ReminderRow:
    text: str = ""

    def encode(self) -> List[int]:
        raw = self.text.upper().encode("ascii", errors="strict")
        if len(raw) > REMINDER_LENGTH:
            raise ValidationError(f"reminder text is longer than {REMINDER_LENGTH} characters: {self.text!r}")
        if any(b < 32 or b > 126 for b in raw):
            raise ValidationError(f"reminder text must be printable ASCII: {self.text!r}")
        return list(raw.ljust(ROW_DATA_SIZE, b"\x00"))

    @classmethod
    def decode(cls, data: Sequence[int]) -> "ReminderRow":
        chars = []
        for b in data[:REMINDER_LENGTH]:
            if b < 32 or b > 126:
                break
            chars.append(chr(b))
        return cls("".join(chars).upper())


TypedRow = Union[PatternRow, LoopRow, ReminderRow]

_ROW_KINDS = {ROW_PATTERN: PatternRow, ROW_LOOP: LoopRow, ROW_REMINDER: ReminderRow}


@dataclass
class ArrangeRow(Record):
    row_type: int = u8()
    data: List[int] = u8_array(ROW_DATA_SIZE)

    @classmethod
    def from_typed(cls, row: TypedRow) -> "ArrangeRow":
        for row_type, kind in _ROW_KINDS.items():
            if isinstance(row, kind):
                return cls(row_type=row_type, data=row.encode())
        raise ValidationError(f"not an arrangement row: {row!r}")

    def typed(self) -> TypedRow:
        kind = _ROW_KINDS.get(self.row_type)
        if kind is None:
            raise ValidationError(f"unknown arrangement row type {self.row_type}")
        return kind.decode(self.data)


@dataclass
class ArrangementBlock(Record):
    name: str = text(15, DEFAULT_ARRANGEMENT_NAME)
    unknown_1: bytes = blob(2)
    n_rows: int = u8()
    rows: List[ArrangeRow] = array(ArrangeRow, MAX_ROWS)

    def _after_decode(self, offset: int) -> None:
        rows_base = offset + self.field_offset("rows")
        for idx in range(self.row_count):
            row = self.rows[idx]
            row_offset = rows_base + idx * ArrangeRow.size()
            if row.row_type not in ROW_TYPES:
                raise FormatError(
                    f"invalid arrangement row type in row {idx}",
                    offset=row_offset,
                    expected=list(ROW_TYPES),
                    actual=row.row_type,
                )
            if row.row_type == ROW_PATTERN and row.data[1] > MAX_REPETITIONS:
                raise FormatError(
                    f"too many repetitions in row {idx}",
                    offset=row_offset + 2,
                    expected=f"0..{MAX_REPETITIONS}",
                    actual=row.data[1],
                )
            if row.row_type == ROW_LOOP and row.data[0] > MAX_LOOP_COUNT:
                raise FormatError(
                    f"loop count too large in row {idx}",
                    offset=row_offset + 1,
                    expected=f"0..{MAX_LOOP_COUNT}",
                    actual=row.data[0],
                )

    @property
    def row_count(self) -> int:
        # a full 256-row arrangement also stores 0; those rows are left opaque
        return self.n_rows

    def typed_rows(self) -> List[TypedRow]:
        return [row.typed() for row in self.rows[: self.row_count]]

    def set_rows(self, rows: Sequence[TypedRow]) -> None:
        """Replace the active rows; rows past the new count are cleared."""

        if len(rows) > MAX_ROWS:
            raise ValidationError(f"an arrangement holds at most {MAX_ROWS} rows, got {len(rows)}")
        encoded = [ArrangeRow.from_typed(row) for row in rows]
        encoded.extend(ArrangeRow() for _ in range(MAX_ROWS - len(encoded)))
        self.rows = encoded
        self.n_rows = len(rows) % MAX_ROWS


@dataclass
class ArrangementFile(Record):
    header: bytes = magic(ARRANGEMENT_HEADER)
    unknown_1: bytes = blob(2)
    current: ArrangementBlock = nested(ArrangementBlock)
    unknown_2: bytes = blob(2)
    saved: ArrangementBlock = nested(ArrangementBlock)
    active_flags: List[int] = u8_array(8)
    checksum: bytes = blob(2)

    def is_default(self, ignore=("checksum",)) -> bool:  # type: ignore[override]
        return super().is_default(ignore=ignore)

