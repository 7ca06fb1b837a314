from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from octa.errors import FormatError, ValidationError
from octa.samples import (
    MAX_SLICES,
    NO_LOOP_POINT,
    LoopMode,
    SampleAttributes,
    Slice,
    TimestretchMode,
    TrigQuantization,
    bars_x100,
    compute_checksum,
    decode_gain,
    decode_tempo,
    encode_gain,
    encode_tempo,
    mode_from_name,
)


@pytest.mark.parametrize(
    ("gain_db", "raw"),
    [(-24.0, 0), (0.0, 48), (24.0, 96), (-23.5, 1), (6.0, 60), (0.25, 49)],
)
def test_gain_encoding(gain_db: float, raw: int) -> None:
    assert encode_gain(gain_db) == raw


def test_gain_decoding_is_inverse() -> None:
    for raw in range(0, 97):
        assert encode_gain(decode_gain(raw)) == raw


@pytest.mark.parametrize("gain_db", [-24.5, 24.5, 100.0])
def test_gain_out_of_range(gain_db: float) -> None:
    with pytest.raises(ValidationError):
        encode_gain(gain_db)


def test_tempo_encoding() -> None:
    assert encode_tempo(120.0) == 2880
    assert encode_tempo(30.0) == 720
    assert encode_tempo(300.0) == 7200
    assert decode_tempo(2880) == 120.0
    with pytest.raises(ValidationError):
        encode_tempo(29.9)
    with pytest.raises(ValidationError):
        encode_tempo(300.1)


def test_bars_x100_one_bar_at_120() -> None:
    # one 4/4 bar at 120 BPM is two seconds
    assert bars_x100(88200, 120.0, 44100) == 100
    assert bars_x100(44100, 120.0, 44100) == 50


def test_mode_from_name_accepts_both_spellings() -> None:
    assert mode_from_name(LoopMode, "PingPong") is LoopMode.PING_PONG
    assert mode_from_name(LoopMode, "PING_PONG") is LoopMode.PING_PONG
    assert mode_from_name(TimestretchMode, "beat") is TimestretchMode.BEAT
    assert mode_from_name(TrigQuantization, "FourtyEightSteps") is TrigQuantization.FORTY_EIGHT_STEPS
    with pytest.raises(ValidationError):
        mode_from_name(LoopMode, "Sideways")


def test_create_whole_file_attributes() -> None:
    attrs = SampleAttributes.create(88200, bpm=120.0, gain_db=-6.0, loop_mode=LoopMode.NORMAL)
    assert attrs.tempo == 2880
    assert attrs.gain == 36
    assert attrs.trim_start == 0
    assert attrs.trim_end == 88200
    assert attrs.trim_len == attrs.loop_len == 100
    assert attrs.loop_mode is LoopMode.NORMAL
    assert attrs.quantization is TrigQuantization.DIRECT
    assert attrs.slices_len == 0
    assert len(attrs.slices) == MAX_SLICES


def test_create_with_slices() -> None:
    attrs = SampleAttributes.create(1000, slices=[(0, 400), (400, 1000)])
    used = attrs.used_slices()
    assert attrs.slices_len == 2
    assert [(s.trim_start, s.trim_end) for s in used] == [(0, 400), (400, 1000)]
    assert all(s.loop_start == NO_LOOP_POINT for s in used)
    assert attrs.slices[2] == Slice()


def test_too_many_slices() -> None:
    with pytest.raises(ValidationError):
        SampleAttributes.create(10000, slices=[(i, i + 1) for i in range(MAX_SLICES + 1)])


def test_slice_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        Slice.span(10, 5)
    with pytest.raises(ValidationError):
        Slice.span(0, 10, loop_start=10)
    assert Slice.span(0, 10, loop_start=9).has_loop_point


def test_checksum_is_stamped_when_zero() -> None:
    attrs = SampleAttributes.create(44100, slices=[(0, 22050)])
    raw = attrs.to_bytes()
    stored = int.from_bytes(raw[-2:], "big")
    assert stored == compute_checksum(raw)
    assert stored != 0
    decoded = SampleAttributes.from_bytes(raw)
    assert decoded.checksum == stored
    assert decoded.checksum_ok()


def test_nonzero_checksum_is_kept() -> None:
    attrs = SampleAttributes.create(44100)
    attrs.checksum = 0x1234
    raw = attrs.to_bytes()
    assert raw[-2:] == b"\x12\x34"
    assert not SampleAttributes.from_bytes(raw).checksum_ok()
    attrs.refresh_checksum()
    assert attrs.checksum_ok()


def test_property_setters_validate() -> None:
    attrs = SampleAttributes.default()
    attrs.bpm = 90.0
    attrs.gain_db = 12.0
    assert attrs.tempo == 2160
    assert attrs.gain == 72
    assert attrs.bpm == 90.0
    assert attrs.gain_db == 12.0
    with pytest.raises(ValidationError):
        attrs.gain_db = 30.0


def test_stored_gain_out_of_range_is_format_error() -> None:
    attrs = SampleAttributes.default()
    raw = bytearray(attrs.to_bytes())
    offset = attrs.field_offset("gain")
    raw[offset : offset + 2] = (97).to_bytes(2, "big")
    with pytest.raises(FormatError) as excinfo:
        SampleAttributes.from_bytes(bytes(raw))
    assert excinfo.value.offset == offset


def test_stored_tempo_out_of_range_is_format_error() -> None:
    attrs = SampleAttributes.default()
    raw = bytearray(attrs.to_bytes())
    offset = attrs.field_offset("tempo")
    raw[offset : offset + 4] = (100).to_bytes(4, "big")
    with pytest.raises(FormatError) as excinfo:
        SampleAttributes.from_bytes(bytes(raw))
    assert excinfo.value.offset == offset == 23


def test_slice_count_out_of_range_is_format_error() -> None:
    attrs = SampleAttributes.default()
    raw = bytearray(attrs.to_bytes())
    offset = attrs.field_offset("slices_len")
    raw[offset : offset + 4] = (65).to_bytes(4, "big")
    with pytest.raises(FormatError):
        SampleAttributes.from_bytes(bytes(raw))


def test_invalid_slice_blocks_encoding() -> None:
    attrs = SampleAttributes.create(1000, slices=[(0, 500)])
    attrs.slices[0].trim_start = 600
    with pytest.raises(ValidationError):
        attrs.to_bytes()


def _with_raw_slice(idx: int, start: int, end: int, loop_start: int) -> bytes:
    attrs = SampleAttributes.create(1000, slices=[(0, 500), (500, 1000)])
    raw = bytearray(attrs.to_bytes())
    base = attrs.field_offset("slices") + idx * Slice.size()
    raw[base : base + 12] = b"".join(v.to_bytes(4, "big") for v in (start, end, loop_start))
    return bytes(raw)


def test_stored_loop_point_outside_slice_is_kept() -> None:
    raw = _with_raw_slice(0, 100, 200, 0)
    decoded = SampleAttributes.from_bytes(raw)
    assert decoded.slices[0] == Slice(100, 200, 0)
    assert decoded.to_bytes() == raw
    with pytest.raises(ValidationError):
        Slice.span(100, 200, loop_start=0)


def test_reversed_stored_slice_is_format_error() -> None:
    raw = _with_raw_slice(1, 900, 800, NO_LOOP_POINT)
    with pytest.raises(FormatError) as excinfo:
        SampleAttributes.from_bytes(raw)
    assert excinfo.value.offset == SampleAttributes.default().field_offset("slices") + Slice.size()
