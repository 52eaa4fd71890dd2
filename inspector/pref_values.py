"""
Closed tagged union of preference value types.

Each supported primitive family is one frozen dataclass variant carrying its
own coercion and rendering rules. Unknown tags raise ``Unsupported``; there
is no fallback variant.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, Optional, Tuple, Type, Union

from inspector.errors.exceptions import Unsupported, ValidationError

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1

# Characters outside the XML 1.0 Char production, lone surrogates included
_XML_ILLEGAL_RE = re.compile(
    "[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)


class PrefType(str, Enum):
    STRING = "String"
    INT = "Int"
    LONG = "Long"
    FLOAT = "Float"
    BOOLEAN = "Boolean"
    STRING_SET = "StringSet"
    # read-only: stored <null> entries; never accepted as a write tag
    NULL = "null"

    @classmethod
    def parse(cls, tag: Any) -> "PrefType":
        if isinstance(tag, PrefType) and tag is not PrefType.NULL:
            return tag
        text = str(tag).strip() if tag is not None else ""
        text = _TAG_ALIASES.get(text, text)
        try:
            parsed = cls(text)
        except ValueError:
            parsed = None
        if parsed is None or parsed is PrefType.NULL:
            raise Unsupported(f"Unsupported type: {tag}")
        return parsed


_TAG_ALIASES = {"Integer": "Int"}


def check_text(text: str, field_name: str) -> str:
    """Reject text that cannot be stored in an XML 1.0 document."""
    m = _XML_ILLEGAL_RE.search(text)
    if m:
        raise ValidationError(
            f"Invalid character in {field_name}: U+{ord(m.group()):04X}",
            details=[f"position {m.start()}"],
        )
    return text


def _parse_number(raw: Any) -> float:
    """Numeric text to float; unparseable or non-finite input becomes 0."""
    if isinstance(raw, bool):
        return float(raw)
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        try:
            value = float(str(raw).strip())
        except (TypeError, ValueError):
            return 0.0
    return value if math.isfinite(value) else 0.0


def _to_bounded_int(raw: Any, lo: int, hi: int) -> int:
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    else:
        text = str(raw).strip() if raw is not None else ""
        try:
            value = int(text)
        except ValueError:
            value = int(_parse_number(raw))
    return min(max(value, lo), hi)


def _split_set(raw: Any) -> Tuple[str, ...]:
    if raw is None:
        items: Iterable[Any] = ()
    elif isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple, set, frozenset)):
        items = raw
    else:
        items = (raw,)
    seen: Dict[str, None] = {}
    for item in items:
        text = str(item).strip()
        if text:
            seen.setdefault(check_text(text, "value"), None)
    return tuple(seen)


@dataclass(frozen=True)
class StringPref:
    type: ClassVar[PrefType] = PrefType.STRING
    value: str

    @classmethod
    def coerce(cls, raw: Any) -> "StringPref":
        return cls("" if raw is None else check_text(str(raw), "value"))

    def render(self) -> str:
        return self.value


@dataclass(frozen=True)
class IntPref:
    type: ClassVar[PrefType] = PrefType.INT
    value: int

    @classmethod
    def coerce(cls, raw: Any) -> "IntPref":
        return cls(_to_bounded_int(raw, INT32_MIN, INT32_MAX))

    def render(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class LongPref:
    type: ClassVar[PrefType] = PrefType.LONG
    value: int

    @classmethod
    def coerce(cls, raw: Any) -> "LongPref":
        return cls(_to_bounded_int(raw, INT64_MIN, INT64_MAX))

    def render(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class FloatPref:
    type: ClassVar[PrefType] = PrefType.FLOAT
    value: float

    @classmethod
    def coerce(cls, raw: Any) -> "FloatPref":
        return cls(_parse_number(raw))

    def render(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class BooleanPref:
    type: ClassVar[PrefType] = PrefType.BOOLEAN
    value: bool

    @classmethod
    def coerce(cls, raw: Any) -> "BooleanPref":
        if isinstance(raw, bool):
            return cls(raw)
        return cls(raw is not None and str(raw).strip().lower() == "true")

    def render(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class StringSetPref:
    type: ClassVar[PrefType] = PrefType.STRING_SET
    value: Tuple[str, ...]

    @classmethod
    def coerce(cls, raw: Any) -> "StringSetPref":
        return cls(_split_set(raw))

    def render(self) -> str:
        return ",".join(self.value)


@dataclass(frozen=True)
class NullPref:
    """A stored ``<null>`` entry; kept so rewrites never drop its key."""

    type: ClassVar[PrefType] = PrefType.NULL
    value: None = None

    def render(self) -> Optional[str]:
        return None


PrefValue = Union[
    StringPref, IntPref, LongPref, FloatPref, BooleanPref, StringSetPref, NullPref
]

VARIANTS: Dict[PrefType, Type[Any]] = {
    PrefType.STRING: StringPref,
    PrefType.INT: IntPref,
    PrefType.LONG: LongPref,
    PrefType.FLOAT: FloatPref,
    PrefType.BOOLEAN: BooleanPref,
    PrefType.STRING_SET: StringSetPref,
}


def coerce(tag: Any, raw: Any) -> PrefValue:
    """Coerce a raw transport value into the variant named by ``tag``."""
    return VARIANTS[PrefType.parse(tag)].coerce(raw)
