"""PCM audio buffers for chain building.

Frames are held as float64 numpy arrays shaped ``(frames, channels)`` in
[-1.0, 1.0]; soundfile does the WAV decoding and PCM conversion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple, Union

import numpy as np
import soundfile as sf

from .errors import StorageError, ValidationError


logger = logging.getLogger(__name__)

PCM_SUBTYPES = {16: "PCM_16", 24: "PCM_24"}
DEFAULT_BIT_DEPTH = 16
MIN_STRETCH = -127
MAX_STRETCH = 127

PathLike = Union[str, Path]


def check_bit_depth(bit_depth: int) -> str:
    subtype = PCM_SUBTYPES.get(bit_depth)
    if subtype is None:
        raise ValidationError(f"bit depth must be one of {sorted(PCM_SUBTYPES)}, got {bit_depth!r}")
    return subtype


@dataclass
class AudioBuffer:
    frames: np.ndarray
    sample_rate: int
    bit_depth: int = DEFAULT_BIT_DEPTH

    def __post_init__(self) -> None:
        data = np.asarray(self.frames, dtype=np.float64)
        if data.ndim == 1:
            data = data[:, np.newaxis]
        if data.ndim != 2:
            raise ValidationError(f"audio frames must be 1-D or 2-D, got shape {data.shape}")
        self.frames = data

    @property
    def n_frames(self) -> int:
        return int(self.frames.shape[0])

    @property
    def channels(self) -> int:
        return int(self.frames.shape[1])

    @property
    def peak(self) -> float:
        if self.n_frames == 0:
            return 0.0
        return float(np.max(np.abs(self.frames)))

    def with_frames(self, frames: np.ndarray) -> "AudioBuffer":
        return AudioBuffer(frames, self.sample_rate, self.bit_depth)


def wav_info(path: PathLike) -> Tuple[int, int]:
    """Return ``(frames, sample_rate)`` without loading the audio."""

    try:
        info = sf.info(str(path))
    except (RuntimeError, OSError) as exc:
        raise StorageError(f"cannot read audio file {path}: {exc}") from exc
    return int(info.frames), int(info.samplerate)


def read_wav(path: PathLike) -> AudioBuffer:
    path = Path(path)
    try:
        info = sf.info(str(path))
        data, sample_rate = sf.read(str(path), dtype="float64", always_2d=True)
    except (RuntimeError, OSError) as exc:
        raise StorageError(f"cannot read audio file {path}: {exc}") from exc
    bit_depth = 24 if info.subtype == "PCM_24" else DEFAULT_BIT_DEPTH
    logger.debug(
        "read %s: frames=%d channels=%d rate=%d subtype=%s",
        path,
        data.shape[0],
        data.shape[1],
        sample_rate,
        info.subtype,
    )
    return AudioBuffer(data, int(sample_rate), bit_depth)


def write_wav(path: PathLike, buffer: AudioBuffer, bit_depth: int = DEFAULT_BIT_DEPTH) -> None:
    subtype = check_bit_depth(bit_depth)
    try:
        sf.write(str(path), buffer.frames, buffer.sample_rate, subtype=subtype, format="WAV")
    except (RuntimeError, OSError) as exc:
        raise StorageError(f"cannot write audio file {path}: {exc}") from exc


def _check_fraction(name: str, fraction: float) -> None:
    if not (0.0 <= fraction <= 1.0):
        raise ValidationError(f"{name} must be in [0.0, 1.0], got {fraction}")


def _ramp(length: int) -> np.ndarray:
    return (np.arange(length, dtype=np.float64) / length)[:, np.newaxis]


def fade_in(buffer: AudioBuffer, fraction: float) -> AudioBuffer:
    """Linear 0 -> 1 ramp over the first ``fraction`` of the buffer."""

    _check_fraction("fade-in fraction", fraction)
    length = int(buffer.n_frames * fraction)
    frames = buffer.frames.copy()
    if length > 0:
        frames[:length] *= _ramp(length)
    return buffer.with_frames(frames)


def fade_out(buffer: AudioBuffer, fraction: float) -> AudioBuffer:
    _check_fraction("fade-out fraction", fraction)
    length = int(buffer.n_frames * fraction)
    frames = buffer.frames.copy()
    if length > 0:
        frames[buffer.n_frames - length :] *= _ramp(length)[::-1]
    return buffer.with_frames(frames)


def normalize(buffer: AudioBuffer) -> AudioBuffer:
    """Scale so the buffer's own peak reaches full scale; silence is unchanged."""

    peak = buffer.peak
    if peak == 0.0:
        return buffer.with_frames(buffer.frames.copy())
    return buffer.with_frames(buffer.frames / peak)


def time_stretch(buffer: AudioBuffer, factor: int) -> AudioBuffer:
    """Change playback speed by dropping or repeating frames.

    ``factor < 0`` repeats every frame ``|factor| + 1`` times; ``factor > 0``
    keeps one frame in every ``factor + 1``.
    """

    if not isinstance(factor, int) or not (MIN_STRETCH <= factor <= MAX_STRETCH):
        raise ValidationError(f"time-stretch factor must be an integer in [{MIN_STRETCH}, {MAX_STRETCH}], got {factor!r}")
    if factor == 0:
        return buffer.with_frames(buffer.frames.copy())
    if factor < 0:
        return buffer.with_frames(np.repeat(buffer.frames, abs(factor) + 1, axis=0))
    return buffer.with_frames(buffer.frames[:: factor + 1].copy())


def to_stereo(buffer: AudioBuffer) -> AudioBuffer:
    if buffer.channels == 2:
        return buffer
    if buffer.channels != 1:
        raise ValidationError(f"cannot upmix {buffer.channels}-channel audio to stereo")
    # both channels at half level (-6 dB)
    return buffer.with_frames(np.repeat(buffer.frames * 0.5, 2, axis=1))


def match_channels(buffers: Sequence[AudioBuffer]) -> List[AudioBuffer]:
    """Upmix mono buffers when a group mixes mono and stereo."""

    counts = {b.channels for b in buffers}
    if len(counts) <= 1:
        return list(buffers)
    if counts - {1, 2}:
        raise ValidationError(f"unsupported channel counts in group: {sorted(counts)}")
    return [to_stereo(b) for b in buffers]
