"""YAML / JSON batch configuration for chain building, chain splitting and bank copies.

Documents are parsed into the job dataclasses the batch runners take.
Relative paths are resolved against the directory holding the document.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .audio import MAX_STRETCH, MIN_STRETCH, PCM_SUBTYPES
from .banks import BANK_COUNT
from .chains import ChainJob, ChainSettings, DeconstructJob, ProcessingSettings
from .errors import StorageError, ValidationError
from .samples import (
    MAX_GAIN_DB,
    MAX_TEMPO,
    MIN_GAIN_DB,
    MIN_TEMPO,
    LoopMode,
    TimestretchMode,
    TrigQuantization,
    mode_from_name,
)
from .transfer import TransferJob


YAML_SUFFIXES = {".yaml", ".yml"}


@dataclass(frozen=True)
class ChainConfig:
    out_dir: Path
    jobs: List[ChainJob] = field(default_factory=list)


@dataclass(frozen=True)
class DeconstructConfig:
    out_dir: Path
    jobs: List[DeconstructJob] = field(default_factory=list)


@dataclass(frozen=True)
class TransferConfig:
    jobs: List[TransferJob] = field(default_factory=list)


def _require_dict(value: object, *, where: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f"{where} must be a mapping")
    return value


def _require_list(value: object, *, where: str) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{where} must be a list")
    return value


def _int_in_range(value: object, *, where: str, low: int, high: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{where} must be an integer")
    if not (low <= value <= high):
        raise ValidationError(f"{where} must be in [{low}, {high}]")
    return value


def _float_in_range(value: object, *, where: str, low: float, high: float) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(f"{where} must be a number")
    if not (low <= value <= high):
        raise ValidationError(f"{where} must be in [{low}, {high}]")
    return float(value)


def _require_bool(value: object, *, where: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{where} must be true or false")
    return value


def _path(value: object, *, where: str, base_dir: Path) -> Path:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{where} must be a non-empty string path")
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def _mode(enum_cls, value: object, *, where: str):
    if not isinstance(value, str):
        raise ValidationError(f"{where} must be a mode name")
    try:
        return mode_from_name(enum_cls, value)
    except ValidationError as exc:
        raise ValidationError(f"{where}: {exc}") from None


def _global_out_dir(obj: Dict[str, Any], *, base_dir: Path) -> Path:
    settings = _require_dict(obj.get("global_settings"), where="global_settings")
    return _path(settings.get("out_dir_path"), where="global_settings.out_dir_path", base_dir=base_dir)


def _parse_chain_settings(raw: object, fmt_raw: object, *, where: str) -> ChainSettings:
    defaults = ChainSettings()
    bit_depth = defaults.bit_depth
    if fmt_raw is not None:
        fmt = _require_dict(fmt_raw, where=f"{where}.audio_format")
        if "bit_depth" in fmt:
            bit_depth = fmt["bit_depth"]
            if not isinstance(bit_depth, int) or isinstance(bit_depth, bool) or bit_depth not in PCM_SUBTYPES:
                valid = ", ".join(str(b) for b in sorted(PCM_SUBTYPES))
                raise ValidationError(f"{where}.audio_format.bit_depth must be one of: {valid}")

    if raw is None:
        return ChainSettings(bit_depth=bit_depth)
    obj = _require_dict(raw, where=f"{where}.octatrack_settings")
    sw = f"{where}.octatrack_settings"

    bpm = defaults.bpm
    if "bpm" in obj:
        bpm = _float_in_range(obj["bpm"], where=f"{sw}.bpm", low=MIN_TEMPO, high=MAX_TEMPO)
    gain = defaults.gain_db
    if "gain" in obj:
        gain = _float_in_range(obj["gain"], where=f"{sw}.gain", low=MIN_GAIN_DB, high=MAX_GAIN_DB)
    stretch = defaults.stretch
    if "timestretch_mode" in obj:
        stretch = _mode(TimestretchMode, obj["timestretch_mode"], where=f"{sw}.timestretch_mode")
    loop_mode = defaults.loop_mode
    if "loop_mode" in obj:
        loop_mode = _mode(LoopMode, obj["loop_mode"], where=f"{sw}.loop_mode")
    quantization = defaults.quantization
    for key in ("quantization_mode", "trig_quantization_mode"):
        if key in obj:
            quantization = _mode(TrigQuantization, obj[key], where=f"{sw}.{key}")

    return ChainSettings(
        bpm=bpm,
        gain_db=gain,
        stretch=stretch,
        loop_mode=loop_mode,
        quantization=quantization,
        bit_depth=bit_depth,
    )


def _parse_processing(raw: object, *, where: str) -> ProcessingSettings:
    if raw is None:
        return ProcessingSettings()
    obj = _require_dict(raw, where=f"{where}.audio_processing")
    pw = f"{where}.audio_processing"

    def _fraction(key: str) -> float:
        if key not in obj:
            return 0.0
        return _float_in_range(obj[key], where=f"{pw}.{key}", low=0.0, high=1.0)

    normalize = False
    if "normalize" in obj:
        normalize = _require_bool(obj["normalize"], where=f"{pw}.normalize")
    stretch = 0
    if "time_stretch" in obj:
        stretch = _int_in_range(obj["time_stretch"], where=f"{pw}.time_stretch", low=MIN_STRETCH, high=MAX_STRETCH)
    return ProcessingSettings(
        fade_in=_fraction("fade_in_percent"),
        fade_out=_fraction("fade_out_percent"),
        normalize=normalize,
        time_stretch=stretch,
    )


def parse_chain_config(data: object, *, base_dir: Path) -> ChainConfig:
    obj = _require_dict(data, where="config")
    out_dir = _global_out_dir(obj, base_dir=base_dir)
    chains_raw = _require_list(obj.get("chains"), where="chains")
    if not chains_raw:
        raise ValidationError("chains must contain at least one chain entry")

    seen: set[str] = set()
    jobs: List[ChainJob] = []
    for idx, chain_raw in enumerate(chains_raw):
        where = f"chains[{idx}]"
        chain_obj = _require_dict(chain_raw, where=where)
        name = chain_obj.get("chain_name")
        if not isinstance(name, str) or not name:
            raise ValidationError(f"{where}.chain_name must be a non-empty string")
        if name in seen:
            raise ValidationError(f"duplicate chain_name {name!r} in chains")
        seen.add(name)

        paths_raw = _require_list(chain_obj.get("audio_file_paths"), where=f"{where}.audio_file_paths")
        if not paths_raw:
            raise ValidationError(f"{where}.audio_file_paths must list at least one file")
        paths = [
            _path(p, where=f"{where}.audio_file_paths[{pidx}]", base_dir=base_dir)
            for pidx, p in enumerate(paths_raw)
        ]
        jobs.append(
            ChainJob(
                name=name,
                audio_paths=paths,
                out_dir=out_dir,
                settings=_parse_chain_settings(
                    chain_obj.get("octatrack_settings"), chain_obj.get("audio_format"), where=where
                ),
                processing=_parse_processing(chain_obj.get("audio_processing"), where=where),
            )
        )
    return ChainConfig(out_dir=out_dir, jobs=jobs)


def parse_deconstruct_config(data: object, *, base_dir: Path) -> DeconstructConfig:
    obj = _require_dict(data, where="config")
    out_dir = _global_out_dir(obj, base_dir=base_dir)
    chains_raw = _require_list(obj.get("chains"), where="chains")
    jobs: List[DeconstructJob] = []
    for idx, chain_raw in enumerate(chains_raw):
        where = f"chains[{idx}]"
        chain_obj = _require_dict(chain_raw, where=where)
        jobs.append(
            DeconstructJob(
                audio_path=_path(chain_obj.get("sample"), where=f"{where}.sample", base_dir=base_dir),
                attributes_path=_path(chain_obj.get("otfile"), where=f"{where}.otfile", base_dir=base_dir),
                out_dir=out_dir,
            )
        )
    return DeconstructConfig(out_dir=out_dir, jobs=jobs)


def _parse_bank_ref(raw: object, *, where: str, base_dir: Path) -> Tuple[Path, int]:
    obj = _require_dict(raw, where=where)
    project = _path(obj.get("project"), where=f"{where}.project", base_dir=base_dir)
    bank_id = _int_in_range(obj.get("bank_id"), where=f"{where}.bank_id", low=1, high=BANK_COUNT)
    return project, bank_id


def parse_transfer_config(data: object, *, base_dir: Path) -> TransferConfig:
    obj = _require_dict(data, where="config")
    copies_raw = _require_list(obj.get("bank_copies"), where="bank_copies")
    jobs: List[TransferJob] = []
    for idx, copy_raw in enumerate(copies_raw):
        where = f"bank_copies[{idx}]"
        copy_obj = _require_dict(copy_raw, where=where)
        src_project, src_bank = _parse_bank_ref(copy_obj.get("src"), where=f"{where}.src", base_dir=base_dir)
        dest_project, dest_bank = _parse_bank_ref(copy_obj.get("dest"), where=f"{where}.dest", base_dir=base_dir)
        force = False
        if "force" in copy_obj:
            force = _require_bool(copy_obj["force"], where=f"{where}.force")
        jobs.append(
            TransferJob(
                src_project=src_project,
                src_bank=src_bank,
                dest_project=dest_project,
                dest_bank=dest_bank,
                force=force,
            )
        )
    return TransferConfig(jobs=jobs)


def load_document(path: Path | str) -> Tuple[Any, Path]:
    """Return ``(payload, base_dir)``; ``.yaml``/``.yml`` is YAML, anything else JSON."""

    doc_path = Path(path).expanduser().resolve()
    try:
        text = doc_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"cannot read config {doc_path}: {exc}") from exc
    try:
        if doc_path.suffix.lower() in YAML_SUFFIXES:
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValidationError(f"cannot parse config {doc_path}: {exc}") from exc
    return payload, doc_path.parent


def load_chain_config(path: Path | str) -> ChainConfig:
    payload, base_dir = load_document(path)
    return parse_chain_config(payload, base_dir=base_dir)


def load_deconstruct_config(path: Path | str) -> DeconstructConfig:
    payload, base_dir = load_document(path)
    return parse_deconstruct_config(payload, base_dir=base_dir)


def load_transfer_config(path: Path | str) -> TransferConfig:
    payload, base_dir = load_document(path)
    return parse_transfer_config(payload, base_dir=base_dir)
