from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import List

from .codec import Record, array, blob, magic, nested, u8, u8_array
from .errors import FormatError


PART_HEADER = b"PART"
TRACKS_PER_PART = 8
SCENES_PER_PART = 16
RECORDER_SLOT_BASE = 128
NO_LOCK = 255


class MachineType(IntEnum):
    STATIC = 0
    FLEX = 1
    THRU = 2
    NEIGHBOR = 3
    PICKUP = 4


@dataclass
class AudioTrackVolume(Record):
    main: int = u8(108)
    cue: int = u8(108)


@dataclass
class ActiveScenes(Record):
    scene_a: int = u8(0)
    scene_b: int = u8(8)


@dataclass
class MachineParamsValues(Record):
    static: List[int] = u8_array(6, [64, 0, 0, 127, 0, 79])
    flex: List[int] = u8_array(6, [64, 0, 0, 127, 0, 79])
    thru: List[int] = u8_array(6, [0, 64, 0, 0, 64, 0])
    neighbor: List[int] = u8_array(6)
    pickup: List[int] = u8_array(6, [64, 2, 1, 127, 64, 1])


@dataclass
class TrackParamsValues(Record):
    lfo: List[int] = u8_array(6, [32, 32, 32, 0, 0, 0])
    amp: List[int] = u8_array(6, [0, 127, 127, 64, 64, 127])
    fx1: List[int] = u8_array(6, [0, 127, 0, 64, 0, 64])
    fx2: List[int] = u8_array(6, [47, 0, 127, 0, 127, 0])


@dataclass
class MachineSetup(Record):
    static: List[int] = u8_array(6, [1, 0, 0, 0, 1, 64])
    flex: List[int] = u8_array(6, [1, 0, 0, 0, 1, 64])
    thru: List[int] = u8_array(6)
    neighbor: List[int] = u8_array(6)
    pickup: List[int] = u8_array(6, [0, 0, 0, 0, 1, 64])


@dataclass
class MachineSlots(Record):
    """Sample slots an audio track's machines point at (0-based ids)."""

    static_slot_id: int = u8()
    flex_slot_id: int = u8()
    unused: bytes = blob(2)
    recorder_slot_id: int = u8(RECORDER_SLOT_BASE)

    @classmethod
    def for_track(cls, track: int) -> "MachineSlots":
        return cls(static_slot_id=track, flex_slot_id=track, recorder_slot_id=RECORDER_SLOT_BASE + track)


@dataclass
class TrackParamsSetup(Record):
    lfo1: List[int] = u8_array(6)
    amp: List[int] = u8_array(6, [1, 1, 0, 0, 0, 0])
    fx1: List[int] = u8_array(6, [0, 0, 1, 0, 3, 0])
    fx2: List[int] = u8_array(6, [0, 1, 127, 1, 0, 0])
    lfo2: List[int] = u8_array(6)


@dataclass
class MidiParamsValues(Record):
    midi: List[int] = u8_array(6, [48, 100, 6, 64, 64, 64])
    lfo: List[int] = u8_array(6, [32, 32, 32, 0, 0, 0])
    arp: List[int] = u8_array(6, [64, 0, 0, 5, 0, 6])
    cc1: List[int] = u8_array(6, [64, 0, 127, 0, 0, 64])
    cc2: List[int] = u8_array(6)
    unknown: bytes = blob(2)


@dataclass
class MidiParamsSetup(Record):
    note: List[int] = u8_array(6, [0, 128, 128, 0, 128, 0])
    lfo1: List[int] = u8_array(6)
    arp: List[int] = u8_array(6, [0, 0, 7, 0, 0, 0])
    cc1: List[int] = u8_array(6, [0, 0, 7, 1, 2, 10])
    cc2: List[int] = u8_array(6, [71, 72, 73, 74, 75, 76])
    lfo2: List[int] = u8_array(6)


@dataclass
class RecorderSetup(Record):
    sources: List[int] = u8_array(6, [1, 1, 64, 0, 0, 1])
    processing: List[int] = u8_array(6, [0, 0, 0, 255, 255, 0])


@dataclass
class SceneLock(Record):
    machine: List[int] = u8_array(6, NO_LOCK)
    lfo: List[int] = u8_array(6, NO_LOCK)
    amp: List[int] = u8_array(6, NO_LOCK)
    fx1: List[int] = u8_array(6, NO_LOCK)
    fx2: List[int] = u8_array(6, NO_LOCK)
    unknown: bytes = blob(2, b"\xff\xff")


@dataclass
class Scene(Record):
    tracks: List[SceneLock] = array(SceneLock, TRACKS_PER_PART)


@dataclass
class SceneXlv(Record):
    track_xlvs: List[int] = u8_array(8, NO_LOCK)
    unknown: bytes = blob(2, b"\xff\xff")


@dataclass
class Part(Record):
    """Track setup preset (6331 bytes); a bank holds saved and unsaved copies."""

    header: bytes = magic(PART_HEADER)
    data_block_1: bytes = blob(4)
    part_id: int = u8()
    fx1_types: List[int] = u8_array(TRACKS_PER_PART, 4)
    fx2_types: List[int] = u8_array(TRACKS_PER_PART, 8)
    active_scenes: ActiveScenes = nested(ActiveScenes)
    volumes: List[AudioTrackVolume] = array(AudioTrackVolume, TRACKS_PER_PART)
    machine_types: List[int] = u8_array(TRACKS_PER_PART)
    machine_params: List[MachineParamsValues] = array(MachineParamsValues, TRACKS_PER_PART)
    params_values: List[TrackParamsValues] = array(TrackParamsValues, TRACKS_PER_PART)
    machine_setup: List[MachineSetup] = array(MachineSetup, TRACKS_PER_PART)
    machine_slots: List[MachineSlots] = array(MachineSlots, TRACKS_PER_PART, MachineSlots.for_track)
    params_setup: List[TrackParamsSetup] = array(TrackParamsSetup, TRACKS_PER_PART)
    midi_params_values: List[MidiParamsValues] = array(MidiParamsValues, TRACKS_PER_PART)
    midi_params_setup: List[MidiParamsSetup] = array(MidiParamsSetup, TRACKS_PER_PART)
    recorder_setup: List[RecorderSetup] = array(RecorderSetup, TRACKS_PER_PART)
    scenes: List[Scene] = array(Scene, SCENES_PER_PART)
    scene_xlvs: List[SceneXlv] = array(SceneXlv, SCENES_PER_PART)
    audio_custom_lfos: bytes = blob(8 * 16)
    audio_lfo_interpolation_masks: bytes = blob(8 * 2)
    midi_custom_lfos: bytes = blob(8 * 16)
    midi_lfo_interpolation_masks: bytes = blob(8 * 2)
    arp_mute_masks: List[int] = u8_array(16, 255)
    arp_sequences: bytes = blob(8 * 16)

    @classmethod
    def for_index(cls, part_id: int) -> "Part":
        return cls(part_id=part_id)

    def machine_type(self, track: int) -> MachineType:
        return MachineType(self.machine_types[track])

    def _after_decode(self, offset: int) -> None:
        base = offset + self.field_offset("machine_types")
        for idx, raw in enumerate(self.machine_types):
            if raw not in MachineType._value2member_map_:
                raise FormatError(
                    "unknown machine type",
                    offset=base + idx,
                    expected=[int(m) for m in MachineType],
                    actual=raw,
                )
