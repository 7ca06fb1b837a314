from dataclasses import dataclass
from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.arrangements import ArrangeRow, ArrangementBlock, ArrangementFile
from octa.banks import Bank
from octa.codec import Record, blob, enum_field, magic, text, u8, u16, u32, u8_array
from octa.errors import FormatError, ValidationError
from octa.parts import Part
from octa.patterns import AudioParameterLock, AudioTrackTrigs, MidiTrackTrigs, Pattern
from octa.samples import SampleAttributes, Slice, TimestretchMode


@dataclass
class _Tiny(Record):
    header: bytes = magic(b"TN")
    count: int = u16(0x0102)
    mode: TimestretchMode = enum_field(TimestretchMode, 1, TimestretchMode.BEAT)
    flags: list = u8_array(3, [1, 2, 3])
    reserved: bytes = blob(2, b"\xaa\xbb")
    label: str = text(4, "ab")
    big: int = u32()
    last: int = u8(7)


def test_tiny_record_layout_is_declaration_order() -> None:
    raw = _Tiny().to_bytes()
    assert raw == b"TN" + b"\x01\x02" + b"\x03" + b"\x01\x02\x03" + b"\xaa\xbb" + b"ab\x00\x00" + bytes(4) + b"\x07"
    assert _Tiny.size() == len(raw) == 19
    assert _Tiny().field_offset("reserved") == 8


def test_tiny_record_decodes_every_field() -> None:
    raw = b"TN\xff\xfe\x00\x09\x08\x07\x01\x02XYZW\x00\x00\x01\x00\x2a"
    rec = _Tiny.from_bytes(raw)
    assert rec.count == 0xFFFE
    assert rec.mode is TimestretchMode.OFF
    assert rec.flags == [9, 8, 7]
    assert rec.reserved == b"\x01\x02"
    assert rec.label == "XYZW"
    assert rec.big == 256
    assert rec.last == 42
    assert rec.to_bytes() == raw


@pytest.mark.parametrize(
    ("record_cls", "size"),
    [
        (Slice, 12),
        (SampleAttributes, 832),
        (AudioParameterLock, 32),
        (AudioTrackTrigs, 2338),
        (MidiTrackTrigs, 2233),
        (Pattern, 36588),
        (Part, 6331),
        (Bank, 636113),
        (ArrangeRow, 22),
        (ArrangementBlock, 5650),
        (ArrangementFile, 11336),
    ],
)
def test_record_sizes(record_cls, size: int) -> None:
    assert record_cls.size() == size
    assert len(record_cls.default().to_bytes()) == size


@pytest.mark.parametrize("record_cls", [SampleAttributes, Pattern, Part, ArrangementFile, Bank])
def test_default_layout_round_trips(record_cls) -> None:
    raw = record_cls.default().to_bytes()
    assert record_cls.from_bytes(raw).to_bytes() == raw


def test_default_is_fresh_each_call() -> None:
    first = Part.default()
    first.machine_slots[0].static_slot_id = 99
    assert Part.default().machine_slots[0].static_slot_id == 0


def test_length_mismatch_reports_offset() -> None:
    with pytest.raises(FormatError) as excinfo:
        SampleAttributes.from_bytes(bytes(831))
    assert excinfo.value.offset == 831
    assert excinfo.value.expected == 832
    assert excinfo.value.actual == 831


def test_bad_header_reports_offset_zero() -> None:
    raw = bytearray(SampleAttributes.default().to_bytes())
    raw[0] = 0
    with pytest.raises(FormatError) as excinfo:
        SampleAttributes.from_bytes(bytes(raw))
    assert excinfo.value.offset == 0


def test_unknown_enum_ordinal_is_rejected() -> None:
    raw = bytearray(SampleAttributes.default().to_bytes())
    offset = SampleAttributes.default().field_offset("stretch")
    raw[offset : offset + 4] = (1).to_bytes(4, "big")
    with pytest.raises(FormatError) as excinfo:
        SampleAttributes.from_bytes(bytes(raw))
    assert excinfo.value.offset == offset
    assert excinfo.value.actual == 1


def test_nested_error_offset_is_absolute() -> None:
    bank = Bank.default()
    raw = bytearray(bank.to_bytes())
    part_base = bank.field_offset("parts_unsaved") + Part.size()  # second unsaved part
    bad = part_base + Part.default().field_offset("machine_types") + 3
    raw[bad] = 9
    with pytest.raises(FormatError) as excinfo:
        Bank.from_bytes(bytes(raw))
    assert excinfo.value.offset == bad
    assert "0x" in str(excinfo.value)


def test_opaque_bytes_survive_round_trip() -> None:
    part = Part.default()
    raw = bytearray(part.to_bytes())
    offset = part.field_offset("data_block_1")
    raw[offset : offset + 4] = b"\xde\xad\xbe\xef"
    arp = part.field_offset("arp_sequences")
    raw[arp + 5] = 0x42
    decoded = Part.from_bytes(bytes(raw))
    assert decoded.data_block_1 == b"\xde\xad\xbe\xef"
    assert decoded.to_bytes() == bytes(raw)


def test_edit_keeps_length_and_other_bytes() -> None:
    pattern = Pattern.default()
    before = pattern.to_bytes()
    pattern.audio_tracks[2].plocks[5].flex_slot_id = 12
    after = pattern.to_bytes()
    assert len(after) == len(before)
    diffs = [idx for idx in range(len(before)) if before[idx] != after[idx]]
    assert len(diffs) == 1


def test_integer_out_of_range_is_validation_error() -> None:
    pattern = Pattern.default()
    pattern.tempo_1 = 256
    with pytest.raises(ValidationError):
        pattern.to_bytes()


def test_wrong_array_length_is_validation_error() -> None:
    part = Part.default()
    part.machine_types = [0] * 7
    with pytest.raises(ValidationError):
        part.to_bytes()


def test_magic_cannot_be_changed() -> None:
    pattern = Pattern.default()
    pattern.header = b"XXXX\x00\x00\x00\x00"
    with pytest.raises(ValidationError):
        pattern.to_bytes()


def test_text_field_too_long() -> None:
    block = ArrangementBlock.default()
    block.name = "A" * 16
    with pytest.raises(ValidationError):
        block.to_bytes()


def test_is_default_ignores_named_fields() -> None:
    bank = Bank.default()
    bank.checksum = b"\x12\x34"
    assert bank.is_default()
    bank.part_names[0].name = "KICKS"
    assert not bank.is_default()


def test_clone_is_independent() -> None:
    pattern = Pattern.default()
    copy = pattern.clone()
    copy.part_assignment = 3
    assert pattern.part_assignment == 0
    assert copy.to_bytes() != pattern.to_bytes()
