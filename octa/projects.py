"""Project files (``project.work`` / ``project.strd``).

Unlike banks and arrangements the project file is CRLF-delimited ASCII:
``[META]``, ``[SETTINGS]`` and ``[STATES]`` key=value sections followed by a
``# Samples`` banner and one ``[SAMPLE]`` block per loaded sample slot.
Sections keep their entries as ordered (key, value) pairs, so repeated keys
such as ``TRIG_MODE_MIDI`` and keys this module does not know about survive a
round-trip unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import FormatError, ValidationError
from .samples import (
    MAX_GAIN_RAW,
    ZERO_GAIN_RAW,
    LoopMode,
    TimestretchMode,
    TrigQuantization,
)


logger = logging.getLogger(__name__)

CRLF = "\r\n"
BANNER = "############################"
SAMPLES_HEADER = f"{BANNER}{CRLF}# Samples{CRLF}{BANNER}"
SUPPORTED_VERSION = 19
SLOT_CAPACITY = 128
RECORDER_SLOT_IDS = tuple(range(129, 137))
DIRECT_QUANTIZATION_RAW = -1

_SECTION_ORDER = ("META", "SETTINGS", "STATES")

DEFAULT_META: List[Tuple[str, str]] = [
    ("TYPE", "OCTATRACK DPS-1 PROJECT"),
    ("VERSION", str(SUPPORTED_VERSION)),
    ("OS_VERSION", "R0177     1.40B"),
]

DEFAULT_SETTINGS: List[Tuple[str, str]] = [
    ("WRITEPROTECTED", "0"),
    ("TEMPOx24", "2880"),
    ("PATTERN_TEMPO_ENABLED", "0"),
    ("MIDI_CLOCK_SEND", "0"),
    ("MIDI_CLOCK_RECEIVE", "0"),
    ("MIDI_TRANSPORT_SEND", "0"),
    ("MIDI_TRANSPORT_RECEIVE", "0"),
    ("MIDI_PROGRAM_CHANGE_SEND", "0"),
    ("MIDI_PROGRAM_CHANGE_SEND_CH", "-1"),
    ("MIDI_PROGRAM_CHANGE_RECEIVE", "0"),
    ("MIDI_PROGRAM_CHANGE_RECEIVE_CH", "-1"),
    *[(f"MIDI_TRIG_CH{n}", str(n - 1)) for n in range(1, 9)],
    ("MIDI_AUTO_CHANNEL", "10"),
    ("MIDI_SOFT_THRU", "0"),
    ("MIDI_AUDIO_TRK_CC_IN", "1"),
    ("MIDI_AUDIO_TRK_CC_OUT", "3"),
    ("MIDI_AUDIO_TRK_NOTE_IN", "1"),
    ("MIDI_AUDIO_TRK_NOTE_OUT", "3"),
    ("MIDI_MIDI_TRK_CC_IN", "1"),
    ("PATTERN_CHANGE_CHAIN_BEHAVIOR", "0"),
    ("PATTERN_CHANGE_AUTO_SILENCE_TRACKS", "0"),
    ("PATTERN_CHANGE_AUTO_TRIG_LFOS", "0"),
    ("LOAD_24BIT_FLEX", "0"),
    ("DYNAMIC_RECORDERS", "0"),
    ("RECORD_24BIT", "0"),
    ("RESERVED_RECORDER_COUNT", "8"),
    ("RESERVED_RECORDER_LENGTH", "16"),
    ("INPUT_DELAY_COMPENSATION", "0"),
    ("GATE_AB", "127"),
    ("GATE_CD", "127"),
    ("GAIN_AB", "64"),
    ("GAIN_CD", "64"),
    ("DIR_AB", "0"),
    ("DIR_CD", "0"),
    ("PHONES_MIX", "64"),
    ("MAIN_TO_CUE", "0"),
    ("MASTER_TRACK", "0"),
    ("CUE_STUDIO_MODE", "0"),
    ("MAIN_LEVEL", "64"),
    ("CUE_LEVEL", "64"),
    ("METRONOME_TIME_SIGNATURE", "3"),
    ("METRONOME_TIME_SIGNATURE_DENOMINATOR", "2"),
    ("METRONOME_PREROLL", "0"),
    ("METRONOME_CUE_VOLUME", "32"),
    ("METRONOME_MAIN_VOLUME", "0"),
    ("METRONOME_PITCH", "12"),
    ("METRONOME_TONAL", "1"),
    ("METRONOME_ENABLED", "0"),
    *[("TRIG_MODE_MIDI", "0") for _ in range(8)],
]

DEFAULT_STATES: List[Tuple[str, str]] = [
    (key, "0")
    for key in (
        "BANK",
        "PATTERN",
        "ARRANGEMENT",
        "ARRANGEMENT_MODE",
        "PART",
        "TRACK",
        "TRACK_OTHERMODE",
        "SCENE_A_MUTE",
        "SCENE_B_MUTE",
        "TRACK_CUE_MASK",
        "TRACK_MUTE_MASK",
        "TRACK_SOLO_MASK",
        "MIDI_TRACK_MUTE_MASK",
        "MIDI_TRACK_SOLO_MASK",
        "MIDI_MODE",
    )
]


class SlotType(Enum):
    STATIC = "STATIC"
    FLEX = "FLEX"


@dataclass
class ProjectSection:
    name: str
    entries: List[Tuple[str, str]] = field(default_factory=list)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for k, v in self.entries:
            if k == key:
                return v
        return default

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        raw = self.get(key)
        if raw is None:
            if default is None:
                raise ValidationError(f"[{self.name}] has no {key} entry")
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(f"[{self.name}] {key}={raw!r} is not an integer") from None

    def set(self, key: str, value: object) -> None:
        """Replace the first ``key`` entry, appending if absent."""

        text_value = str(value)
        for idx, (k, _) in enumerate(self.entries):
            if k == key:
                self.entries[idx] = (key, text_value)
                return
        self.entries.append((key, text_value))

    def to_text(self) -> str:
        body = CRLF.join(f"{k}={v}" for k, v in self.entries)
        return f"[{self.name}]{CRLF}{body}{CRLF}[/{self.name}]"


@dataclass
class SampleSlot:
    """One ``[SAMPLE]`` block.  ``slot_id`` is 1-based as written on disk."""

    slot_type: SlotType
    slot_id: int
    path: str
    trim_bars_x100: int = 0
    timestretch: TimestretchMode = TimestretchMode.NORMAL
    loop_mode: LoopMode = LoopMode.OFF
    gain: int = ZERO_GAIN_RAW
    trig_quantization: int = DIRECT_QUANTIZATION_RAW
    tempo_x24: Optional[int] = None
    extra: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def quantization(self) -> TrigQuantization:
        if self.trig_quantization == DIRECT_QUANTIZATION_RAW:
            return TrigQuantization.DIRECT
        return TrigQuantization(self.trig_quantization)

    @property
    def is_recorder_buffer(self) -> bool:
        return self.slot_id in RECORDER_SLOT_IDS

    def settings_key(self) -> Tuple[object, ...]:
        """Every playback setting; part of a slot's identity."""

        return (
            self.slot_type,
            self.trim_bars_x100,
            self.timestretch,
            self.loop_mode,
            self.gain,
            self.quantization,
            self.tempo_x24,
            tuple(self.extra),
        )

    def resolved_path(self, project_dir: Path) -> Path:
        return (Path(project_dir) / self.path).resolve()

    def validate(self) -> None:
        if not (1 <= self.slot_id <= SLOT_CAPACITY) and not (
            self.slot_type is SlotType.FLEX and self.is_recorder_buffer
        ):
            raise ValidationError(f"{self.slot_type.value} slot id {self.slot_id} out of range")
        if not (0 <= self.gain <= MAX_GAIN_RAW):
            raise ValidationError(f"slot {self.slot_id} gain {self.gain} outside 0..{MAX_GAIN_RAW}")
        if self.trig_quantization != DIRECT_QUANTIZATION_RAW:
            try:
                TrigQuantization(self.trig_quantization)
            except ValueError:
                raise ValidationError(
                    f"slot {self.slot_id} has unknown trig quantization {self.trig_quantization}"
                ) from None
        if "\r" in self.path or "\n" in self.path:
            raise ValidationError(f"slot {self.slot_id} path contains a line break")

    def to_text(self) -> str:
        self.validate()
        lines = [
            "[SAMPLE]",
            f"TYPE={self.slot_type.value}",
            f"SLOT={self.slot_id:03d}",
            f"PATH={self.path}",
            f"TRIM_BARSx100={self.trim_bars_x100}",
            f"TSMODE={int(self.timestretch)}",
            f"LOOPMODE={int(self.loop_mode)}",
            f"GAIN={self.gain}",
            f"TRIGQUANTIZATION={self.trig_quantization}",
        ]
        if self.tempo_x24 is not None:
            lines.append(f"BPMx24={self.tempo_x24}")
        lines.extend(f"{k}={v}" for k, v in self.extra)
        lines.append("[/SAMPLE]")
        return CRLF.join(lines)


def default_recorder_slots() -> List[SampleSlot]:
    return [
        SampleSlot(
            slot_type=SlotType.FLEX,
            slot_id=slot_id,
            path="",
            gain=72,
        )
        for slot_id in RECORDER_SLOT_IDS
    ]


# --- parsing ---


def _iter_lines(text: str) -> Iterator[Tuple[int, str]]:
    pos = 0
    while pos < len(text):
        end = text.find(CRLF, pos)
        if end == -1:
            yield pos, text[pos:]
            return
        yield pos, text[pos:end]
        pos = end + len(CRLF)


def _int_value(value: str, *, key: str, offset: int) -> int:
    try:
        return int(value)
    except ValueError:
        raise FormatError(f"{key} is not an integer", offset=offset, actual=value) from None


def _enum_value(enum_cls, value: str, *, key: str, offset: int):
    raw = _int_value(value, key=key, offset=offset)
    try:
        return enum_cls(raw)
    except ValueError:
        raise FormatError(
            f"unknown {key} value",
            offset=offset,
            expected=[int(m) for m in enum_cls],
            actual=raw,
        ) from None


def _parse_slot(entries: List[Tuple[int, str, str]], block_offset: int) -> SampleSlot:
    known: Dict[str, Tuple[int, str]] = {}
    extra: List[Tuple[str, str]] = []
    slot_keys = {
        "TYPE",
        "SLOT",
        "PATH",
        "TRIM_BARSx100",
        "TSMODE",
        "LOOPMODE",
        "GAIN",
        "TRIGQUANTIZATION",
        "BPMx24",
    }
    for offset, key, value in entries:
        if key in slot_keys and key not in known:
            known[key] = (offset, value)
        else:
            extra.append((key, value))

    for required in ("TYPE", "SLOT", "PATH"):
        if required not in known:
            raise FormatError(f"[SAMPLE] block missing {required}", offset=block_offset)

    type_offset, type_value = known["TYPE"]
    try:
        slot_type = SlotType(type_value)
    except ValueError:
        raise FormatError(
            "unknown sample slot TYPE",
            offset=type_offset,
            expected=[t.value for t in SlotType],
            actual=type_value,
        ) from None

    def _int(key: str, default: int) -> int:
        if key not in known:
            return default
        offset, value = known[key]
        return _int_value(value, key=key, offset=offset)

    timestretch = TimestretchMode.NORMAL
    if "TSMODE" in known:
        offset, value = known["TSMODE"]
        timestretch = _enum_value(TimestretchMode, value, key="TSMODE", offset=offset)
    loop_mode = LoopMode.OFF
    if "LOOPMODE" in known:
        offset, value = known["LOOPMODE"]
        loop_mode = _enum_value(LoopMode, value, key="LOOPMODE", offset=offset)

    quant = _int("TRIGQUANTIZATION", DIRECT_QUANTIZATION_RAW)
    if quant != DIRECT_QUANTIZATION_RAW and quant not in TrigQuantization._value2member_map_:
        raise FormatError(
            "unknown TRIGQUANTIZATION value",
            offset=known["TRIGQUANTIZATION"][0],
            actual=quant,
        )
    gain = _int("GAIN", ZERO_GAIN_RAW)
    if not (0 <= gain <= MAX_GAIN_RAW):
        raise FormatError("GAIN out of range", offset=known["GAIN"][0], expected=f"0..{MAX_GAIN_RAW}", actual=gain)

    return SampleSlot(
        slot_type=slot_type,
        slot_id=_int("SLOT", 0),
        path=known["PATH"][1],
        trim_bars_x100=_int("TRIM_BARSx100", 0),
        timestretch=timestretch,
        loop_mode=loop_mode,
        gain=gain,
        trig_quantization=quant,
        tempo_x24=_int("BPMx24", 0) if "BPMx24" in known else None,
        extra=extra,
    )


@dataclass
class Project:
    """Parsed project file; ``slots`` holds every ``[SAMPLE]`` block in file order."""

    meta: ProjectSection
    settings: ProjectSection
    states: ProjectSection
    slots: List[SampleSlot] = field(default_factory=list)

    @classmethod
    def default(cls) -> "Project":
        return cls(
            meta=ProjectSection("META", list(DEFAULT_META)),
            settings=ProjectSection("SETTINGS", list(DEFAULT_SETTINGS)),
            states=ProjectSection("STATES", list(DEFAULT_STATES)),
            slots=default_recorder_slots(),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Project":
        text = bytes(data).decode("latin-1")
        sections: Dict[str, ProjectSection] = {}
        slots: List[SampleSlot] = []
        current: Optional[str] = None
        current_entries: List[Tuple[int, str, str]] = []
        block_offset = 0
        seen_samples_banner = False

        for offset, line in _iter_lines(text):
            if current is None:
                if not line or line.startswith("#"):
                    if line == "# Samples":
                        seen_samples_banner = True
                    continue
                if line.startswith("[") and line.endswith("]") and not line.startswith("[/"):
                    current = line[1:-1]
                    current_entries = []
                    block_offset = offset
                    continue
                raise FormatError("unexpected text outside a section", offset=offset, actual=line)

            if line == f"[/{current}]":
                if current == "SAMPLE":
                    if not seen_samples_banner:
                        raise FormatError("[SAMPLE] block before the samples banner", offset=block_offset)
                    slots.append(_parse_slot(current_entries, block_offset))
                elif current in _SECTION_ORDER:
                    if current in sections:
                        raise FormatError(f"duplicate [{current}] section", offset=block_offset)
                    sections[current] = ProjectSection(
                        current, [(k, v) for _, k, v in current_entries]
                    )
                else:
                    raise FormatError("unknown project section", offset=block_offset, actual=current)
                current = None
                continue

            key, sep, value = line.partition("=")
            if not sep:
                raise FormatError(f"malformed [{current}] line", offset=offset, actual=line)
            current_entries.append((offset, key, value))

        if current is not None:
            raise FormatError(f"unterminated [{current}] section", offset=block_offset)
        for name in _SECTION_ORDER:
            if name not in sections:
                raise FormatError(f"missing [{name}] section", offset=len(data))

        project = cls(
            meta=sections["META"],
            settings=sections["SETTINGS"],
            states=sections["STATES"],
            slots=slots,
        )
        logger.debug("decoded project: version=%s slots=%d", project.meta.get("VERSION"), len(slots))
        return project

    def to_bytes(self) -> bytes:
        head = (CRLF * 2).join(
            section.to_text() for section in (self.meta, self.settings, self.states)
        )
        parts = [head, CRLF * 2, SAMPLES_HEADER]
        for slot in self.slots:
            parts.append(CRLF * 2)
            parts.append(slot.to_text())
        parts.append(f"{CRLF * 2}{BANNER}{CRLF * 2}")
        return "".join(parts).encode("latin-1")

    def clone(self) -> "Project":
        return Project.from_bytes(self.to_bytes())

    @property
    def version(self) -> int:
        return self.meta.get_int("VERSION")

    @property
    def os_version(self) -> str:
        return self.meta.get("OS_VERSION", "") or ""

    @property
    def tempo(self) -> float:
        return self.settings.get_int("TEMPOx24") / 24

    @property
    def master_track_enabled(self) -> bool:
        return self.settings.get_int("MASTER_TRACK", 0) == 1

    @property
    def track_mute_mask(self) -> int:
        return self.states.get_int("TRACK_MUTE_MASK", 0)

    def check_version(self) -> None:
        if self.version != SUPPORTED_VERSION:
            raise ValidationError(
                f"unsupported project version {self.version}; supported version is {SUPPORTED_VERSION}"
            )

    def slot(self, slot_type: SlotType, slot_id: int) -> Optional[SampleSlot]:
        for entry in self.slots:
            if entry.slot_type is slot_type and entry.slot_id == slot_id:
                return entry
        return None

    def slots_of(self, slot_type: SlotType) -> List[SampleSlot]:
        """Loadable slots (1-128) of one class, sorted by id."""

        return sorted(
            (s for s in self.slots if s.slot_type is slot_type and not s.is_recorder_buffer),
            key=lambda s: s.slot_id,
        )

    def free_slot_ids(self, slot_type: SlotType) -> List[int]:
        used = {s.slot_id for s in self.slots if s.slot_type is slot_type}
        return [slot_id for slot_id in range(1, SLOT_CAPACITY + 1) if slot_id not in used]

    def add_slot(self, slot: SampleSlot) -> None:
        slot.validate()
        if self.slot(slot.slot_type, slot.slot_id) is not None:
            raise ValidationError(f"{slot.slot_type.value} slot {slot.slot_id} is already in use")
        self.slots.append(slot)
