"""
Record and field vocabulary for the word store.

``Level`` and ``Field`` are closed sets: every dynamic query or update is
expressed in terms of them, so caller-supplied text never reaches SQL as an
identifier.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from .errors import ValidationError


class Level(enum.Enum):
    """JLPT tier a word was seeded under. N5 is the easiest, N1 the hardest."""
    N1 = "n1"
    N2 = "n2"
    N3 = "n3"
    N4 = "n4"
    N5 = "n5"

    @property
    def token(self) -> str:
        return self.value

    @property
    def difficulty(self) -> int:
        # n5 -> 1 ... n1 -> 5
        return 6 - int(self.value[1])

    @classmethod
    def parse(cls, token: Any) -> Optional["Level"]:
        """Return the level for ``token`` or None when it is not one of n1..n5."""
        if isinstance(token, Level):
            return token
        if not isinstance(token, str):
            return None
        try:
            return cls(token.strip().lower())
        except ValueError:
            return None

    @classmethod
    def ordered(cls) -> Tuple["Level", ...]:
        """All levels, least to most advanced."""
        return tuple(sorted(cls, key=lambda lv: lv.difficulty))

    def __str__(self) -> str:
        return self.value


class Field(enum.Enum):
    """Columns of the ``words`` table that dynamic queries may target."""
    ID = "id"
    EXPRESSION = "expression"
    READING = "reading"
    MEANING = "meaning"
    LEVEL = "level"
    PRACTICE_COUNT = "practice_count"
    FAMILIAR = "familiar"
    USER_MARKED = "user_marked"

    @property
    def updatable(self) -> bool:
        return self is not Field.ID


_TEXT_FIELDS = (Field.EXPRESSION, Field.READING, Field.MEANING)
_TRUE_TOKENS = {"1", "true", "yes"}
_FALSE_TOKENS = {"0", "false", "no"}


def require_level(value: Union[Level, str]) -> Level:
    level = Level.parse(value)
    if level is None:
        raise ValidationError(f"Unknown level {value!r}; expected one of n1..n5")
    return level


def _coerce_int(field: Field, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field.value} expects an integer, got {value!r}")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError(f"{field.value} expects an integer, got {value!r}")
    if value < 0:
        raise ValidationError(f"{field.value} cannot be negative (got {value})")
    return value


def _coerce_bool(field: Field, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        token = value.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    raise ValidationError(f"{field.value} expects a boolean, got {value!r}")


def coerce_field_value(field: Field, value: Any) -> Any:
    """Convert a raw caller value into what is stored in ``field``'s column."""
    if field in _TEXT_FIELDS:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{field.value} must be a non-empty string")
        return value
    if field is Field.LEVEL:
        return require_level(value).token
    if field in (Field.ID, Field.PRACTICE_COUNT):
        return _coerce_int(field, value)
    if field in (Field.FAMILIAR, Field.USER_MARKED):
        return _coerce_bool(field, value)
    raise ValidationError(f"Unsupported field {field!r}")


@dataclass(frozen=True)
class WordRecord:
    """A vocabulary entry together with its study progress.

    ``id`` is assigned by the store; records built for insertion leave it None.
    """
    expression: str
    reading: str
    meaning: str
    level: Level
    practice_count: int = 0
    familiar: bool = False
    user_marked: bool = False
    id: Optional[int] = None

    def __post_init__(self) -> None:
        for field in _TEXT_FIELDS:
            coerce_field_value(field, getattr(self, field.value))
        # accept "n5" as well as Level.N5
        object.__setattr__(self, "level", require_level(self.level))
        coerce_field_value(Field.PRACTICE_COUNT, self.practice_count)
        for field in (Field.FAMILIAR, Field.USER_MARKED):
            object.__setattr__(self, field.value, coerce_field_value(field, getattr(self, field.value)))
