"""Sample attribute (``.ot``) files: per-sample playback settings and slice table."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from .codec import Record, array, enum_field, magic, u16, u32
from .errors import FormatError, ValidationError


SAMPLE_HEADER = b"FORM\x00\x00\x00\x00DPS1SMPA\x00\x00\x00\x00\x00\x02\x00"
CHECKSUM_START = 16  # checksum covers everything after "FORM....DPS1SMPA"
MAX_SLICES = 64
NO_LOOP_POINT = 0xFFFFFFFF
DEFAULT_SAMPLE_RATE = 44100

MIN_TEMPO = 30.0
MAX_TEMPO = 300.0
TEMPO_SCALE = 24
DEFAULT_TEMPO_RAW = 120 * TEMPO_SCALE

MIN_GAIN_DB = -24.0
MAX_GAIN_DB = 24.0
MAX_GAIN_RAW = 96
ZERO_GAIN_RAW = 48


class TimestretchMode(IntEnum):
    OFF = 0
    NORMAL = 2
    BEAT = 3


class LoopMode(IntEnum):
    OFF = 0
    NORMAL = 1
    PING_PONG = 2


class TrigQuantization(IntEnum):
    PATTERN_LENGTH = 0
    ONE_STEP = 1
    TWO_STEPS = 2
    THREE_STEPS = 3
    FOUR_STEPS = 4
    SIX_STEPS = 5
    EIGHT_STEPS = 6
    TWELVE_STEPS = 7
    SIXTEEN_STEPS = 8
    TWENTY_FOUR_STEPS = 9
    THIRTY_TWO_STEPS = 10
    FORTY_EIGHT_STEPS = 11
    SIXTY_FOUR_STEPS = 12
    NINETY_SIX_STEPS = 13
    ONE_TWENTY_EIGHT_STEPS = 14
    ONE_NINETY_TWO_STEPS = 15
    TWO_FIFTY_SIX_STEPS = 16
    DIRECT = 255


# Spellings found in older configuration files.
_NAME_ALIASES = {
    "fourtyeightsteps": "fortyeightsteps",
    "twofivesixsteps": "twofiftysixsteps",
}

E = TypeVar("E", bound=IntEnum)


def _squash(name: str) -> str:
    return name.replace("_", "").replace("-", "").replace(" ", "").lower()


def mode_from_name(enum_cls: Type[E], name: str) -> E:
    """Look up ``name`` as either ``PingPong`` or ``PING_PONG`` style."""

    key = _squash(name)
    key = _NAME_ALIASES.get(key, key)
    for member in enum_cls:
        if _squash(member.name) == key:
            return member
    valid = ", ".join(m.name for m in enum_cls)
    raise ValidationError(f"unknown {enum_cls.__name__} {name!r}; expected one of: {valid}")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def encode_gain(gain_db: float) -> int:
    """Map -24.0..+24.0 dB (0.5 dB steps) onto the stored 0..96 range."""

    if not (MIN_GAIN_DB <= gain_db <= MAX_GAIN_DB):
        raise ValidationError(f"gain must be in [{MIN_GAIN_DB}, {MAX_GAIN_DB}] dB, got {gain_db}")
    return _round_half_up((gain_db + 24.0) * 2.0)


def decode_gain(raw: int) -> float:
    if not (0 <= raw <= MAX_GAIN_RAW):
        raise ValidationError(f"stored gain must be in [0, {MAX_GAIN_RAW}], got {raw}")
    return raw / 2.0 - 24.0


def encode_tempo(bpm: float) -> int:
    if not (MIN_TEMPO <= bpm <= MAX_TEMPO):
        raise ValidationError(f"tempo must be in [{MIN_TEMPO}, {MAX_TEMPO}] BPM, got {bpm}")
    return _round_half_up(bpm * TEMPO_SCALE)


def decode_tempo(raw: int) -> float:
    return raw / TEMPO_SCALE


def bars_x100(frames: int, bpm: float, sample_rate: int = DEFAULT_SAMPLE_RATE) -> int:
    """Length of ``frames`` in bars (4/4) times 100, as stored in trim/loop lengths."""

    return _round_half_up(bpm * frames * 100 / (sample_rate * 240))


def compute_checksum(raw: bytes) -> int:
    return sum(raw[CHECKSUM_START:-2]) & 0xFFFF


@dataclass
class Slice(Record):
    trim_start: int = u32()
    trim_end: int = u32()
    loop_start: int = u32()

    @classmethod
    def span(cls, start: int, end: int, loop_start: Optional[int] = None) -> "Slice":
        entry = cls(start, end, NO_LOOP_POINT if loop_start is None else loop_start)
        entry.validate("slice")
        if entry.has_loop_point and not (start <= entry.loop_start < end):
            raise ValidationError(f"slice loop point {entry.loop_start} outside [{start}, {end})")
        return entry

    @property
    def frames(self) -> int:
        return self.trim_end - self.trim_start

    @property
    def has_loop_point(self) -> bool:
        return self.loop_start != NO_LOOP_POINT

    def validate(self, where: str) -> None:
        # Stored loop points are kept as found; files in the wild place them outside the slice.
        if self.trim_start > self.trim_end:
            raise ValidationError(
                f"{where} start {self.trim_start} is after its end {self.trim_end}"
            )


@dataclass
class SampleAttributes(Record):
    """Decoded ``.ot`` file (832 bytes)."""

    header: bytes = magic(SAMPLE_HEADER)
    tempo: int = u32(DEFAULT_TEMPO_RAW)
    trim_len: int = u32()
    loop_len: int = u32()
    stretch: TimestretchMode = enum_field(TimestretchMode, 4, TimestretchMode.NORMAL)
    loop_mode: LoopMode = enum_field(LoopMode, 4, LoopMode.OFF)
    gain: int = u16(ZERO_GAIN_RAW)
    quantization: TrigQuantization = enum_field(TrigQuantization, 1, TrigQuantization.DIRECT)
    trim_start: int = u32()
    trim_end: int = u32()
    loop_start: int = u32()
    slices: List[Slice] = array(Slice, MAX_SLICES)
    slices_len: int = u32()
    checksum: int = u16()

    @classmethod
    def create(
        cls,
        frames: int,
        *,
        bpm: float = 120.0,
        gain_db: float = 0.0,
        stretch: TimestretchMode = TimestretchMode.NORMAL,
        loop_mode: LoopMode = LoopMode.OFF,
        quantization: TrigQuantization = TrigQuantization.DIRECT,
        slices: Sequence[Tuple[int, int]] = (),
        sample_rate: int = DEFAULT_SAMPLE_RATE,
    ) -> "SampleAttributes":
        """Build whole-file attributes for ``frames`` frames of audio.

        ``slices`` is a sequence of ``(start, end)`` frame offsets; slices get
        no loop point.
        """

        if len(slices) > MAX_SLICES:
            raise ValidationError(f"at most {MAX_SLICES} slices are supported, got {len(slices)}")
        bars = bars_x100(frames, bpm, sample_rate)
        attrs = cls(
            tempo=encode_tempo(bpm),
            trim_len=bars,
            loop_len=bars,
            stretch=stretch,
            loop_mode=loop_mode,
            gain=encode_gain(gain_db),
            quantization=quantization,
            trim_start=0,
            trim_end=frames,
            loop_start=0,
        )
        attrs.set_slices(Slice.span(start, end) for start, end in slices)
        return attrs

    @property
    def bpm(self) -> float:
        return decode_tempo(self.tempo)

    @bpm.setter
    def bpm(self, value: float) -> None:
        self.tempo = encode_tempo(value)

    @property
    def gain_db(self) -> float:
        return decode_gain(self.gain)

    @gain_db.setter
    def gain_db(self, value: float) -> None:
        self.gain = encode_gain(value)

    def used_slices(self) -> List[Slice]:
        return self.slices[: self.slices_len]

    def set_slices(self, entries: Iterable[Slice]) -> None:
        entries = list(entries)
        if len(entries) > MAX_SLICES:
            raise ValidationError(f"at most {MAX_SLICES} slices are supported, got {len(entries)}")
        padded = entries + [Slice() for _ in range(MAX_SLICES - len(entries))]
        self.slices = padded
        self.slices_len = len(entries)

    def _after_decode(self, offset: int) -> None:
        if not (MIN_TEMPO * TEMPO_SCALE <= self.tempo <= MAX_TEMPO * TEMPO_SCALE):
            raise FormatError(
                "tempo out of range",
                offset=offset + self.field_offset("tempo"),
                expected=f"{int(MIN_TEMPO * TEMPO_SCALE)}..{int(MAX_TEMPO * TEMPO_SCALE)}",
                actual=self.tempo,
            )
        if self.gain > MAX_GAIN_RAW:
            raise FormatError(
                "gain out of range",
                offset=offset + self.field_offset("gain"),
                expected=f"0..{MAX_GAIN_RAW}",
                actual=self.gain,
            )
        if self.slices_len > MAX_SLICES:
            raise FormatError(
                "slice count out of range",
                offset=offset + self.field_offset("slices_len"),
                expected=f"0..{MAX_SLICES}",
                actual=self.slices_len,
            )
        for idx, entry in enumerate(self.used_slices()):
            if entry.trim_start > entry.trim_end:
                raise FormatError(
                    f"slice {idx} starts after its end",
                    offset=offset + self.field_offset("slices") + idx * Slice.size(),
                    expected=f"start <= {entry.trim_end}",
                    actual=entry.trim_start,
                )

    def validate(self) -> None:
        if not (MIN_TEMPO * TEMPO_SCALE <= self.tempo <= MAX_TEMPO * TEMPO_SCALE):
            raise ValidationError(f"stored tempo {self.tempo} outside {MIN_TEMPO}..{MAX_TEMPO} BPM")
        decode_gain(self.gain)
        if self.slices_len > MAX_SLICES:
            raise ValidationError(f"slice count {self.slices_len} exceeds {MAX_SLICES}")
        for idx, entry in enumerate(self.used_slices()):
            entry.validate(f"slices[{idx}]")

    def to_bytes(self) -> bytes:
        """Encode; a zero checksum is replaced with the computed one."""

        self.validate()
        raw = bytearray(super().to_bytes())
        if self.checksum == 0:
            raw[-2:] = compute_checksum(raw).to_bytes(2, "big")
        return bytes(raw)

    def refresh_checksum(self) -> int:
        self.checksum = 0
        self.checksum = int.from_bytes(self.to_bytes()[-2:], "big")
        return self.checksum

    def checksum_ok(self) -> bool:
        return compute_checksum(self.to_bytes()) == self.checksum
