from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.arrangements import (
    DEFAULT_ARRANGEMENT_NAME,
    ROW_LOOP,
    ROW_PATTERN,
    ArrangeRow,
    ArrangementBlock,
    ArrangementFile,
    LoopRow,
    PatternRow,
    ReminderRow,
)
from octa.errors import FormatError, ValidationError


def test_default_file_layout() -> None:
    arr = ArrangementFile.default()
    raw = arr.to_bytes()
    assert raw.startswith(b"FORM\x00\x00\x00\x00DPS1ARRA")
    assert arr.current.name == DEFAULT_ARRANGEMENT_NAME
    assert arr.current.n_rows == 0
    assert arr.is_default()


def test_pattern_row_positions() -> None:
    row = PatternRow(
        pattern_id=17,
        repetitions=3,
        mute_mask=0b1010,
        tempo_1=11,
        tempo_2=64,
        scene_a=2,
        scene_b=9,
        offset=4,
        length=16,
        midi_transpose=[1, 2, 3, 4, 5, 6, 7, 8],
    )
    encoded = ArrangeRow.from_typed(row)
    assert encoded.row_type == ROW_PATTERN
    assert encoded.data[0] == 17
    assert encoded.data[1] == 3
    assert encoded.data[3] == 0b1010
    assert encoded.data[5:9] == [11, 64, 2, 9]
    assert encoded.data[10] == 4
    assert encoded.data[12] == 16
    assert encoded.data[13:21] == [1, 2, 3, 4, 5, 6, 7, 8]
    assert encoded.typed() == row


def test_loop_and_reminder_rows() -> None:
    loop = ArrangeRow.from_typed(LoopRow(loop_count=4, row_target=1))
    assert loop.row_type == ROW_LOOP
    assert loop.data[:2] == [4, 1]
    assert loop.typed() == LoopRow(4, 1)

    reminder = ArrangeRow.from_typed(ReminderRow("verse two"))
    assert reminder.typed() == ReminderRow("VERSE TWO")
    assert bytes(reminder.data[:9]) == b"VERSE TWO"


@pytest.mark.parametrize(
    "row",
    [
        PatternRow(pattern_id=0, repetitions=64),
        LoopRow(loop_count=101),
        ReminderRow("x" * 16),
        ReminderRow("tab\there"),
    ],
)
def test_row_limits(row) -> None:
    with pytest.raises(ValidationError):
        ArrangeRow.from_typed(row)


def test_set_rows_round_trips_through_file() -> None:
    arr = ArrangementFile.default()
    rows = [
        PatternRow(pattern_id=0, repetitions=1),
        ReminderRow("CHORUS"),
        PatternRow(pattern_id=1),
        LoopRow(loop_count=2, row_target=0),
    ]
    arr.current.set_rows(rows)
    arr.current.name = "SONG"
    decoded = ArrangementFile.from_bytes(arr.to_bytes())
    assert decoded.current.name == "SONG"
    assert decoded.current.n_rows == 4
    assert decoded.current.typed_rows() == rows
    assert decoded.saved.typed_rows() == []
    assert not decoded.is_default()


def test_rows_past_count_are_kept_verbatim() -> None:
    arr = ArrangementFile.default()
    raw = bytearray(arr.to_bytes())
    block_base = arr.field_offset("current")
    row_base = block_base + arr.current.field_offset("rows") + 10 * ArrangeRow.size()
    raw[row_base] = 0x7F  # not a valid row type, but row 10 is beyond n_rows
    raw[row_base + 1] = 0x55
    decoded = ArrangementFile.from_bytes(bytes(raw))
    assert decoded.current.rows[10].row_type == 0x7F
    assert decoded.to_bytes() == bytes(raw)


def test_bad_row_type_reports_row_offset() -> None:
    arr = ArrangementFile.default()
    arr.current.set_rows([PatternRow(pattern_id=0), PatternRow(pattern_id=1)])
    raw = bytearray(arr.to_bytes())
    row_offset = arr.field_offset("current") + arr.current.field_offset("rows") + ArrangeRow.size()
    raw[row_offset] = 5
    with pytest.raises(FormatError) as excinfo:
        ArrangementFile.from_bytes(bytes(raw))
    assert excinfo.value.offset == row_offset


def test_excess_repetitions_is_format_error() -> None:
    arr = ArrangementFile.default()
    arr.saved.set_rows([PatternRow(pattern_id=3)])
    raw = bytearray(arr.to_bytes())
    row_offset = arr.field_offset("saved") + arr.saved.field_offset("rows")
    raw[row_offset + 2] = 64
    with pytest.raises(FormatError) as excinfo:
        ArrangementFile.from_bytes(bytes(raw))
    assert excinfo.value.offset == row_offset + 2


def test_full_block_stores_zero_count() -> None:
    block = ArrangementBlock.default()
    block.set_rows([PatternRow(pattern_id=idx % 256) for idx in range(256)])
    assert block.n_rows == 0
    decoded = ArrangementBlock.from_bytes(block.to_bytes())
    assert decoded.rows[255].typed() == PatternRow(pattern_id=255)


def test_checksum_ignored_by_default_check() -> None:
    arr = ArrangementFile.default()
    arr.checksum = b"\xab\xcd"
    assert arr.is_default()
