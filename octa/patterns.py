from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Tuple

from .codec import Record, array, blob, magic, nested, u8, u8_array


PATTERN_HEADER = b"PTRN\x00\x00\x00\x00"
AUDIO_TRACK_HEADER = b"TRAC"
MIDI_TRACK_HEADER = b"MTRA"

TRACKS_PER_PATTERN = 8
STEPS_PER_PATTERN = 64
NO_LOCK = 255  # empty parameter-lock value
DEFAULT_SWING_MASK = 170


def steps_from_mask(mask: List[int]) -> List[int]:
    """Return the 1-based steps set in an 8-byte trig mask.

    Masks are stored last-page-first: byte 7 holds steps 1-8 with bit 0 as
    step 1.
    """

    steps: List[int] = []
    for step in range(STEPS_PER_PATTERN):
        if mask[7 - step // 8] & (1 << (step % 8)):
            steps.append(step + 1)
    return steps


def mask_from_steps(steps: Iterable[int]) -> List[int]:
    mask = [0] * 8
    for step in steps:
        if not (1 <= step <= STEPS_PER_PATTERN):
            raise ValueError(f"step {step} outside 1..{STEPS_PER_PATTERN}")
        idx = step - 1
        mask[7 - idx // 8] |= 1 << (idx % 8)
    return mask


@dataclass
class AudioParameterLock(Record):
    """Per-step locks for one audio track trig (32 bytes)."""

    machine: List[int] = u8_array(6, NO_LOCK)
    lfo: List[int] = u8_array(6, NO_LOCK)
    amp: List[int] = u8_array(6, NO_LOCK)
    fx1: List[int] = u8_array(6, NO_LOCK)
    fx2: List[int] = u8_array(6, NO_LOCK)
    static_slot_id: int = u8(NO_LOCK)
    flex_slot_id: int = u8(NO_LOCK)

    def is_empty(self) -> bool:
        return self.to_bytes() == bytes([NO_LOCK]) * 32


@dataclass
class MidiParameterLock(Record):
    midi: List[int] = u8_array(6, NO_LOCK)
    lfo: List[int] = u8_array(6, NO_LOCK)
    arp: List[int] = u8_array(6, NO_LOCK)
    cc1: List[int] = u8_array(6, NO_LOCK)
    cc2: List[int] = u8_array(6, NO_LOCK)
    unknown: bytes = blob(2, b"\xff\xff")


@dataclass
class AudioTrigMasks(Record):
    trigger: List[int] = u8_array(8)
    trigless: List[int] = u8_array(8)
    plock: List[int] = u8_array(8)
    oneshot: List[int] = u8_array(8)
    recorder: List[int] = u8_array(32)
    swing: List[int] = u8_array(8, DEFAULT_SWING_MASK)
    slide: List[int] = u8_array(8)


@dataclass
class MidiTrigMasks(Record):
    trigger: List[int] = u8_array(8)
    trigless: List[int] = u8_array(8)
    plock: List[int] = u8_array(8)
    swing: List[int] = u8_array(8, DEFAULT_SWING_MASK)
    unknown: bytes = blob(8)


@dataclass
class TrackScale(Record):
    per_track_len: int = u8(16)
    per_track_scale: int = u8(2)


@dataclass
class TrackPatternSettings(Record):
    start_silent: int = u8(255)
    plays_free: int = u8()
    trig_mode: int = u8()
    trig_quant: int = u8()
    oneshot_trk: int = u8()


@dataclass
class AudioTrackTrigs(Record):
    header: bytes = magic(AUDIO_TRACK_HEADER)
    unknown_1: bytes = blob(4)
    track_id: int = u8()
    trig_masks: AudioTrigMasks = nested(AudioTrigMasks)
    scale: TrackScale = nested(TrackScale)
    swing_amount: int = u8()
    pattern_settings: TrackPatternSettings = nested(TrackPatternSettings)
    unknown_2: bytes = blob(1)
    plocks: List[AudioParameterLock] = array(AudioParameterLock, STEPS_PER_PATTERN)
    unknown_3: bytes = blob(64)
    trig_offsets_repeats_conditions: bytes = blob(128)

    @classmethod
    def for_track(cls, track_id: int) -> "AudioTrackTrigs":
        return cls(track_id=track_id)

    def trigger_steps(self) -> List[int]:
        return steps_from_mask(self.trig_masks.trigger)


@dataclass
class MidiTrackTrigs(Record):
    header: bytes = magic(MIDI_TRACK_HEADER)
    unknown_1: bytes = blob(4)
    track_id: int = u8()
    trig_masks: MidiTrigMasks = nested(MidiTrigMasks)
    scale: TrackScale = nested(TrackScale)
    swing_amount: int = u8()
    pattern_settings: TrackPatternSettings = nested(TrackPatternSettings)
    plocks: List[MidiParameterLock] = array(MidiParameterLock, STEPS_PER_PATTERN)
    trig_offsets_repeats_conditions: bytes = blob(128)

    @classmethod
    def for_track(cls, track_id: int) -> "MidiTrackTrigs":
        return cls(track_id=track_id)

    def trigger_steps(self) -> List[int]:
        return steps_from_mask(self.trig_masks.trigger)


@dataclass
class PatternScale(Record):
    master_len_per_track_multiplier: int = u8()
    master_len_per_track: int = u8(16)
    master_scale_per_track: int = u8(2)
    master_len: int = u8(16)
    master_scale: int = u8(2)
    scale_mode: int = u8()


@dataclass
class PatternChainBehaviour(Record):
    use_pattern_setting: int = u8()
    use_project_setting: int = u8()


@dataclass
class Pattern(Record):
    """One of a bank's 16 patterns (36588 bytes)."""

    header: bytes = magic(PATTERN_HEADER)
    audio_tracks: List[AudioTrackTrigs] = array(
        AudioTrackTrigs, TRACKS_PER_PATTERN, AudioTrackTrigs.for_track
    )
    midi_tracks: List[MidiTrackTrigs] = array(
        MidiTrackTrigs, TRACKS_PER_PATTERN, MidiTrackTrigs.for_track
    )
    scale: PatternScale = nested(PatternScale)
    chain_behaviour: PatternChainBehaviour = nested(PatternChainBehaviour)
    unknown: int = u8()
    part_assignment: int = u8()
    tempo_1: int = u8(11)
    tempo_2: int = u8(64)

    @property
    def bpm(self) -> float:
        return ((self.tempo_1 << 8) | self.tempo_2) / 24

    def iter_audio_plocks(self) -> Iterator[Tuple[int, int, AudioParameterLock]]:
        """Yield ``(track, step, lock)`` for every audio parameter-lock entry."""

        for track_idx, track in enumerate(self.audio_tracks):
            for step_idx, lock in enumerate(track.plocks):
                yield track_idx, step_idx, lock
