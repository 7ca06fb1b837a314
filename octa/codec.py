"""Declarative binary record framework.

A record is a dataclass deriving from :class:`Record` whose fields are
declared with the helpers in this module (``u8()``, ``u32()``, ``blob()``,
``array()`` ...).  Each helper stores a :class:`FieldCodec` in the field
metadata; declaration order is byte order, so the same declaration drives
``from_bytes`` and ``to_bytes`` and the two cannot drift apart.

All multi-byte integers are big-endian.
"""

from __future__ import annotations

from dataclasses import field, fields
from enum import IntEnum
from typing import Any, Callable, ClassVar, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from .errors import FormatError, ValidationError


CODEC_KEY = "octa_codec"
BYTE_ORDER = "big"

R = TypeVar("R", bound="Record")


class FieldCodec:
    """Encode/decode one fixed-size field."""

    size: int = 0

    def decode(self, data: bytes, offset: int) -> Any:
        raise NotImplementedError

    def encode(self, value: Any, where: str) -> bytes:
        raise NotImplementedError

    def default(self) -> Any:
        raise NotImplementedError


class UInt(FieldCodec):
    def __init__(self, width: int, default: int = 0) -> None:
        self.size = width
        self.max_value = (1 << (8 * width)) - 1
        self._default = default

    def decode(self, data: bytes, offset: int) -> int:
        return int.from_bytes(data[offset : offset + self.size], BYTE_ORDER)

    def encode(self, value: Any, where: str) -> bytes:
        if not isinstance(value, int):
            raise ValidationError(f"{where} must be an integer, got {type(value).__name__}")
        if not (0 <= value <= self.max_value):
            raise ValidationError(f"{where} must be in [0, {self.max_value}], got {value}")
        return value.to_bytes(self.size, BYTE_ORDER)

    def default(self) -> int:
        return self._default


class U8Array(FieldCodec):
    """Fixed-length run of unsigned bytes exposed as a list of ints."""

    def __init__(self, count: int, fill: Union[int, Sequence[int]] = 0) -> None:
        self.size = count
        if isinstance(fill, int):
            self._fill = [fill] * count
        else:
            self._fill = list(fill)
        if len(self._fill) != count:
            raise ValueError(f"fill has {len(self._fill)} values, need {count}")

    def decode(self, data: bytes, offset: int) -> List[int]:
        return list(data[offset : offset + self.size])

    def encode(self, value: Any, where: str) -> bytes:
        if len(value) != self.size:
            raise ValidationError(f"{where} must hold {self.size} values, got {len(value)}")
        try:
            return bytes(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"{where} values must be integers in [0, 255]") from exc

    def default(self) -> List[int]:
        return list(self._fill)


class Blob(FieldCodec):
    """Opaque, position-preserving bytes whose meaning is not known."""

    def __init__(self, size: int, fill: bytes = b"") -> None:
        self.size = size
        self._fill = fill if fill else bytes(size)
        if len(self._fill) != size:
            raise ValueError(f"blob fill is {len(self._fill)} bytes, need {size}")

    def decode(self, data: bytes, offset: int) -> bytes:
        return bytes(data[offset : offset + self.size])

    def encode(self, value: Any, where: str) -> bytes:
        if not isinstance(value, (bytes, bytearray)) or len(value) != self.size:
            raise ValidationError(f"{where} must be {self.size} bytes")
        return bytes(value)

    def default(self) -> bytes:
        return self._fill


class Magic(Blob):
    """Constant header bytes; any other content is a format error."""

    def __init__(self, value: bytes) -> None:
        super().__init__(len(value), value)

    def decode(self, data: bytes, offset: int) -> bytes:
        found = bytes(data[offset : offset + self.size])
        if found != self._fill:
            raise FormatError("bad header", offset=offset, expected=self._fill, actual=found)
        return found

    def encode(self, value: Any, where: str) -> bytes:
        if value != self._fill:
            raise ValidationError(f"{where} must be {self._fill!r}")
        return self._fill


class Text(FieldCodec):
    """Fixed-width NUL-padded ASCII text."""

    def __init__(self, size: int, default: str = "") -> None:
        self.size = size
        self._default = default

    def decode(self, data: bytes, offset: int) -> str:
        return data[offset : offset + self.size].rstrip(b"\x00").decode("latin-1")

    def encode(self, value: Any, where: str) -> bytes:
        if not isinstance(value, str):
            raise ValidationError(f"{where} must be a string")
        raw = value.encode("latin-1", errors="strict")
        if len(raw) > self.size:
            raise ValidationError(f"{where} is longer than {self.size} characters: {value!r}")
        return raw.ljust(self.size, b"\x00")

    def default(self) -> str:
        return self._default


class EnumCodec(FieldCodec):
    """Integer field restricted to the members of an ``IntEnum``."""

    def __init__(self, enum_cls: Type[IntEnum], width: int, default: IntEnum) -> None:
        self.enum_cls = enum_cls
        self.size = width
        self._int = UInt(width)
        self._default = default

    def decode(self, data: bytes, offset: int) -> IntEnum:
        raw = self._int.decode(data, offset)
        try:
            return self.enum_cls(raw)
        except ValueError:
            valid = sorted(int(m) for m in self.enum_cls)
            raise FormatError(
                f"unknown {self.enum_cls.__name__} value",
                offset=offset,
                expected=valid,
                actual=raw,
            ) from None

    def encode(self, value: Any, where: str) -> bytes:
        if not isinstance(value, self.enum_cls):
            try:
                value = self.enum_cls(value)
            except ValueError:
                raise ValidationError(
                    f"{where} must be a {self.enum_cls.__name__}, got {value!r}"
                ) from None
        return self._int.encode(int(value), where)

    def default(self) -> IntEnum:
        return self._default


class Nested(FieldCodec):
    def __init__(self, record_cls: Type["Record"], factory: Optional[Callable[[], "Record"]] = None) -> None:
        self.record_cls = record_cls
        self.size = record_cls.size()
        self._factory = factory or record_cls.default

    def decode(self, data: bytes, offset: int) -> "Record":
        return self.record_cls._decode_at(data, offset)

    def encode(self, value: Any, where: str) -> bytes:
        if not isinstance(value, self.record_cls):
            raise ValidationError(f"{where} must be a {self.record_cls.__name__}")
        return value._encode(where)

    def default(self) -> "Record":
        return self._factory()


class ArrayOf(FieldCodec):
    """Fixed count of nested records; ``factory(index)`` builds defaults."""

    def __init__(
        self,
        record_cls: Type["Record"],
        count: int,
        factory: Optional[Callable[[int], "Record"]] = None,
    ) -> None:
        self.item = Nested(record_cls)
        self.count = count
        self.size = self.item.size * count
        self._factory = factory

    def decode(self, data: bytes, offset: int) -> List["Record"]:
        step = self.item.size
        return [self.item.decode(data, offset + idx * step) for idx in range(self.count)]

    def encode(self, value: Any, where: str) -> bytes:
        if len(value) != self.count:
            raise ValidationError(f"{where} must hold {self.count} entries, got {len(value)}")
        return b"".join(self.item.encode(v, f"{where}[{idx}]") for idx, v in enumerate(value))

    def default(self) -> List["Record"]:
        if self._factory is not None:
            return [self._factory(idx) for idx in range(self.count)]
        return [self.item.default() for _ in range(self.count)]


# --- field declaration helpers ---


def _declare(codec: FieldCodec, factory: Optional[Callable[[], Any]] = None) -> Any:
    return field(default_factory=factory or codec.default, metadata={CODEC_KEY: codec})


def u8(default: int = 0) -> Any:
    return _declare(UInt(1, default))


def u16(default: int = 0) -> Any:
    return _declare(UInt(2, default))


def u32(default: int = 0) -> Any:
    return _declare(UInt(4, default))


def u8_array(count: int, fill: Union[int, Sequence[int]] = 0) -> Any:
    return _declare(U8Array(count, fill))


def blob(size: int, fill: bytes = b"") -> Any:
    return _declare(Blob(size, fill))


def magic(value: bytes) -> Any:
    return _declare(Magic(value))


def text(size: int, default: str = "") -> Any:
    return _declare(Text(size, default))


def enum_field(enum_cls: Type[IntEnum], width: int, default: IntEnum) -> Any:
    return _declare(EnumCodec(enum_cls, width, default))


def nested(record_cls: Type["Record"], factory: Optional[Callable[[], "Record"]] = None) -> Any:
    return _declare(Nested(record_cls, factory))


def array(
    record_cls: Type["Record"],
    count: int,
    factory: Optional[Callable[[int], "Record"]] = None,
) -> Any:
    return _declare(ArrayOf(record_cls, count, factory))


class Record:
    """Base class for fixed-size binary records.

    Subclasses must be dataclasses whose every field is declared with one of
    the helpers above.  ``default()`` builds the hardware's empty layout.
    """

    _layout_cache: ClassVar[Optional[Tuple[Tuple[str, FieldCodec], ...]]] = None
    _size_cache: ClassVar[Optional[int]] = None

    @classmethod
    def layout(cls) -> Tuple[Tuple[str, FieldCodec], ...]:
        cached = cls.__dict__.get("_layout_cache")
        if cached is None:
            cached = tuple((f.name, f.metadata[CODEC_KEY]) for f in fields(cls))
            cls._layout_cache = cached
        return cached

    @classmethod
    def size(cls) -> int:
        cached = cls.__dict__.get("_size_cache")
        if cached is None:
            cached = sum(codec.size for _, codec in cls.layout())
            cls._size_cache = cached
        return cached

    @classmethod
    def default(cls: Type[R]) -> R:
        return cls()

    @classmethod
    def from_bytes(cls: Type[R], data: bytes) -> R:
        data = bytes(data)
        expected = cls.size()
        if len(data) != expected:
            raise FormatError(
                f"{cls.__name__} length mismatch",
                offset=min(len(data), expected),
                expected=expected,
                actual=len(data),
            )
        return cls._decode_at(data, 0)

    @classmethod
    def _decode_at(cls: Type[R], data: bytes, base: int) -> R:
        values = {}
        pos = base
        for name, codec in cls.layout():
            values[name] = codec.decode(data, pos)
            pos += codec.size
        record = cls(**values)
        record._after_decode(base)
        return record

    def _after_decode(self, offset: int) -> None:
        """Hook for cross-field checks once every field is decoded."""

    def _encode(self, where: str) -> bytes:
        return b"".join(
            codec.encode(getattr(self, name), f"{where}.{name}") for name, codec in self.layout()
        )

    def to_bytes(self) -> bytes:
        return self._encode(type(self).__name__)

    def clone(self: R) -> R:
        return type(self).from_bytes(self.to_bytes())

    def field_offset(self, name: str) -> int:
        """Return the byte offset of ``name`` inside this record."""

        pos = 0
        for field_name, codec in self.layout():
            if field_name == name:
                return pos
            pos += codec.size
        raise KeyError(name)

    def is_default(self, ignore: Iterable[str] = ()) -> bool:
        """Compare the byte image with ``default()``, skipping ``ignore`` fields."""

        skip = set(ignore)
        reference = type(self).default()
        for name, codec in self.layout():
            if name in skip:
                continue
            where = f"{type(self).__name__}.{name}"
            if codec.encode(getattr(self, name), where) != codec.encode(getattr(reference, name), where):
                return False
        return True
