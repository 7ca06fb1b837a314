"""Sample chain builder and slice-table utilities.

A chain is one WAV holding several source samples back to back plus a ``.ot``
whose slice table addresses each of them.  Inputs are split into groups of at
most 64 (the slice-table size); group ``i`` is written as ``{name}-{i}``.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, TypeVar, Union

import numpy as np

from .audio import (
    DEFAULT_BIT_DEPTH,
    AudioBuffer,
    check_bit_depth,
    fade_in,
    fade_out,
    match_channels,
    normalize,
    read_wav,
    time_stretch,
    wav_info,
    write_wav,
)
from .errors import OctaError, ValidationError
from .samples import (
    MAX_SLICES,
    LoopMode,
    SampleAttributes,
    TimestretchMode,
    TrigQuantization,
)
from .storage import atomic_target, ensure_dir, read_record, write_record


logger = logging.getLogger(__name__)

MIN_SLICING_FRAMES = 128
MIN_RANDOM_SLICE_FRAMES = 64

PathLike = Union[str, Path]
T = TypeVar("T")


@dataclass(frozen=True)
class ChainSettings:
    """Device playback settings written to every ``.ot`` of a chain."""

    bpm: float = 120.0
    gain_db: float = 0.0
    stretch: TimestretchMode = TimestretchMode.NORMAL
    loop_mode: LoopMode = LoopMode.OFF
    quantization: TrigQuantization = TrigQuantization.DIRECT
    bit_depth: int = DEFAULT_BIT_DEPTH

    def attributes(self, frames: int, slices: Sequence[Tuple[int, int]], sample_rate: int) -> SampleAttributes:
        return SampleAttributes.create(
            frames,
            bpm=self.bpm,
            gain_db=self.gain_db,
            stretch=self.stretch,
            loop_mode=self.loop_mode,
            quantization=self.quantization,
            slices=slices,
            sample_rate=sample_rate,
        )


@dataclass(frozen=True)
class ProcessingSettings:
    fade_in: float = 0.0
    fade_out: float = 0.0
    normalize: bool = False
    time_stretch: int = 0


@dataclass
class ChainOutput:
    name: str
    audio: AudioBuffer
    attributes: SampleAttributes
    slices: List[Tuple[int, int]] = field(default_factory=list)


@dataclass(frozen=True)
class ChainJob:
    name: str
    audio_paths: List[Path]
    out_dir: Path
    settings: ChainSettings = field(default_factory=ChainSettings)
    processing: ProcessingSettings = field(default_factory=ProcessingSettings)


@dataclass(frozen=True)
class DeconstructJob:
    audio_path: Path
    attributes_path: Path
    out_dir: Path


def chunked(items: Sequence[T], size: int = MAX_SLICES) -> List[List[T]]:
    return [list(items[idx : idx + size]) for idx in range(0, len(items), size)]


def preprocess(buffer: AudioBuffer, processing: ProcessingSettings) -> AudioBuffer:
    """Fade in, fade out, normalize, then time-stretch one buffer.

    Fades and normalization work on this buffer alone; stretching runs last
    because it changes the frame count.
    """

    out = buffer
    if processing.fade_in:
        out = fade_in(out, processing.fade_in)
    if processing.fade_out:
        out = fade_out(out, processing.fade_out)
    if processing.normalize:
        out = normalize(out)
    if processing.time_stretch:
        out = time_stretch(out, processing.time_stretch)
    return out


def build_chain(
    name: str,
    buffers: Sequence[AudioBuffer],
    settings: ChainSettings = ChainSettings(),
    processing: ProcessingSettings = ProcessingSettings(),
) -> ChainOutput:
    """Concatenate up to 64 buffers into one chain with a slice per input."""

    if not buffers:
        raise ValidationError(f"chain {name!r} has no audio")
    if len(buffers) > MAX_SLICES:
        raise ValidationError(f"a chain holds at most {MAX_SLICES} samples, got {len(buffers)}")
    check_bit_depth(settings.bit_depth)

    rates = {b.sample_rate for b in buffers}
    if len(rates) != 1:
        raise ValidationError(f"chain {name!r} mixes sample rates {sorted(rates)}")
    sample_rate = rates.pop()

    processed = match_channels([preprocess(b, processing) for b in buffers])

    slices: List[Tuple[int, int]] = []
    offset = 0
    for buf in processed:
        slices.append((offset, offset + buf.n_frames))
        offset += buf.n_frames

    joined = AudioBuffer(
        np.concatenate([b.frames for b in processed], axis=0),
        sample_rate,
        settings.bit_depth,
    )
    attrs = settings.attributes(joined.n_frames, slices, sample_rate)
    logger.debug("built chain %s: slices=%d frames=%d", name, len(slices), joined.n_frames)
    return ChainOutput(name=name, audio=joined, attributes=attrs, slices=slices)


def build_chains(
    name: str,
    buffers: Sequence[AudioBuffer],
    settings: ChainSettings = ChainSettings(),
    processing: ProcessingSettings = ProcessingSettings(),
) -> List[ChainOutput]:
    if not buffers:
        raise ValidationError(f"chain {name!r} has no audio")
    return [
        build_chain(f"{name}-{idx}", group, settings, processing)
        for idx, group in enumerate(chunked(buffers), start=1)
    ]


def write_chain(output: ChainOutput, out_dir: PathLike) -> Tuple[Path, Path]:
    """Write ``{name}.wav`` and ``{name}.ot`` into ``out_dir``."""

    out_dir = ensure_dir(out_dir)
    wav_path = out_dir / f"{output.name}.wav"
    ot_path = out_dir / f"{output.name}.ot"
    with atomic_target(wav_path) as tmp:
        write_wav(tmp, output.audio, output.audio.bit_depth)
    write_record(ot_path, output.attributes)
    logger.info("wrote chain %s (%d slices)", wav_path, len(output.slices))
    return wav_path, ot_path


def create_chains(job: ChainJob) -> List[Tuple[Path, Path]]:
    """Read, build and write every group of one chain job."""

    if not job.audio_paths:
        raise ValidationError(f"chain {job.name!r} lists no audio files")
    written: List[Tuple[Path, Path]] = []
    for idx, group in enumerate(chunked(job.audio_paths), start=1):
        buffers = [read_wav(path) for path in group]
        output = build_chain(f"{job.name}-{idx}", buffers, job.settings, job.processing)
        written.append(write_chain(output, job.out_dir))
    return written


def run_chain_jobs(jobs: Sequence[ChainJob]) -> List[Tuple[Path, Path]]:
    """Run jobs in order; a failing job is logged and the next one still runs."""

    written: List[Tuple[Path, Path]] = []
    for job in jobs:
        try:
            written.extend(create_chains(job))
        except OctaError as exc:
            logger.error("chain %s failed: %s", job.name, exc)
    return written


# --- slice tables for existing samples ---


def _attributes_path(wav_path: Path) -> Path:
    return wav_path.with_suffix(".ot")


def _write_attributes(wav_path: PathLike, slices: Sequence[Tuple[int, int]], settings: ChainSettings) -> Path:
    wav_path = Path(wav_path)
    frames, sample_rate = wav_info(wav_path)
    attrs = settings.attributes(frames, slices, sample_rate)
    ot_path = _attributes_path(wav_path)
    write_record(ot_path, attrs)
    return ot_path


def _check_slicing(frames: int, n_slices: int) -> None:
    if not (1 <= n_slices <= MAX_SLICES):
        raise ValidationError(f"slice count must be in [1, {MAX_SLICES}], got {n_slices}")
    if frames < MIN_SLICING_FRAMES:
        raise ValidationError(f"need at least {MIN_SLICING_FRAMES} frames to slice, got {frames}")


def create_default_attributes(wav_path: PathLike, settings: ChainSettings = ChainSettings()) -> Path:
    """Write a whole-file ``.ot`` (no slices) next to ``wav_path``."""

    return _write_attributes(wav_path, [], settings)


def equal_slices(frames: int, n_slices: int) -> List[Tuple[int, int]]:
    _check_slicing(frames, n_slices)
    length = frames // n_slices
    return [(idx * length, (idx + 1) * length) for idx in range(n_slices)]


def random_slices(frames: int, n_slices: int, rng: Optional[random.Random] = None) -> List[Tuple[int, int]]:
    _check_slicing(frames, n_slices)
    rng = rng or random.Random()
    max_length = max(frames // n_slices, MIN_RANDOM_SLICE_FRAMES)
    slices = []
    for _ in range(n_slices):
        start = rng.randint(0, frames - MIN_RANDOM_SLICE_FRAMES)
        end = rng.randint(start + 1, min(start + max_length, frames))
        slices.append((start, end))
    return slices


def create_equal_slices(wav_path: PathLike, n_slices: int, settings: ChainSettings = ChainSettings()) -> Path:
    frames, _ = wav_info(wav_path)
    return _write_attributes(wav_path, equal_slices(frames, n_slices), settings)


def create_random_slices(
    wav_path: PathLike,
    n_slices: int,
    rng: Optional[random.Random] = None,
    settings: ChainSettings = ChainSettings(),
) -> Path:
    frames, _ = wav_info(wav_path)
    return _write_attributes(wav_path, random_slices(frames, n_slices, rng), settings)


def deconstruct_chain(audio_path: PathLike, attributes_path: PathLike, out_dir: PathLike) -> List[Path]:
    """Split a chain back into one WAV per slice: ``{stem}-{n}.wav``."""

    audio_path = Path(audio_path)
    buffer = read_wav(audio_path)
    attrs = read_record(attributes_path, SampleAttributes)
    used = attrs.used_slices()
    if not used:
        raise ValidationError(f"{attributes_path} has no slices")

    out_dir = ensure_dir(out_dir)
    written: List[Path] = []
    for idx, entry in enumerate(used, start=1):
        if entry.trim_end > buffer.n_frames:
            raise ValidationError(
                f"slice {idx} ends at frame {entry.trim_end}, past the end of {audio_path} ({buffer.n_frames})"
            )
        piece = buffer.with_frames(buffer.frames[entry.trim_start : entry.trim_end])
        target = out_dir / f"{audio_path.stem}-{idx}.wav"
        with atomic_target(target) as tmp:
            write_wav(tmp, piece, buffer.bit_depth)
        written.append(target)
    logger.info("split %s into %d files", audio_path, len(written))
    return written


def run_deconstruct_jobs(jobs: Sequence[DeconstructJob]) -> List[Path]:
    written: List[Path] = []
    for job in jobs:
        try:
            written.extend(deconstruct_chain(job.audio_path, job.attributes_path, job.out_dir))
        except OctaError as exc:
            logger.error("deconstructing %s failed: %s", job.audio_path, exc)
    return written
