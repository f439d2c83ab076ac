"""
Read side of the word store.

Everything here returns plain ``WordRecord`` objects, id lists or integers.
Absence is never an error: unknown ids and empty filters yield empty results.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger
from sqlalchemy import case, func, select
from sqlalchemy.sql import Select

from .db import Word, WordStore, column_for
from .errors import ValidationError
from .records import Field, Level, WordRecord, coerce_field_value, require_level


def _check_non_negative(name: str, value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")


@dataclass(frozen=True)
class ProgressSelect:
    """Optional-predicate filter over words and their progress.

    Unset predicates are not filtered on. Each setter returns a new instance::

        ProgressSelect().where_level(Level.N5).where_familiar(False).take(20).shuffled()
    """
    level: Optional[Level] = None
    min_practice_count: Optional[int] = None
    familiar: Optional[bool] = None
    user_marked: Optional[bool] = None
    limit: Optional[int] = None
    random: bool = False

    def __post_init__(self) -> None:
        if self.level is not None:
            object.__setattr__(self, "level", require_level(self.level))
        _check_non_negative("min_practice_count", self.min_practice_count)
        _check_non_negative("limit", self.limit)
        for field in (Field.FAMILIAR, Field.USER_MARKED):
            flag = getattr(self, field.value)
            if flag is not None:
                object.__setattr__(self, field.value, coerce_field_value(field, flag))

    def where_level(self, level: Union[Level, str]) -> "ProgressSelect":
        return replace(self, level=require_level(level))

    def min_practice(self, count: int) -> "ProgressSelect":
        return replace(self, min_practice_count=count)

    def where_familiar(self, familiar: bool) -> "ProgressSelect":
        return replace(self, familiar=familiar)

    def where_user_marked(self, user_marked: bool) -> "ProgressSelect":
        return replace(self, user_marked=user_marked)

    def take(self, limit: int) -> "ProgressSelect":
        return replace(self, limit=limit)

    def shuffled(self, random: bool = True) -> "ProgressSelect":
        return replace(self, random=random)

    def apply(self, stmt: Select) -> Select:
        if self.level is not None:
            stmt = stmt.where(Word.level == self.level.token)
        if self.min_practice_count is not None:
            stmt = stmt.where(Word.practice_count >= self.min_practice_count)
        if self.familiar is not None:
            stmt = stmt.where(Word.familiar == self.familiar)
        if self.user_marked is not None:
            stmt = stmt.where(Word.user_marked == self.user_marked)
        # Shuffle before LIMIT so truncation samples without replacement
        stmt = stmt.order_by(func.random() if self.random else Word.id.asc())
        if self.limit is not None:
            stmt = stmt.limit(self.limit)
        return stmt


class WordList(enum.Enum):
    """Canned reporting views over progress."""
    PRACTICED = "practiced"
    FAMILIAR = "familiar"
    UNFAMILIAR = "unfamiliar"
    MARKED = "marked"

    def selection(self) -> ProgressSelect:
        if self is WordList.PRACTICED:
            return ProgressSelect(min_practice_count=1)
        if self is WordList.FAMILIAR:
            return ProgressSelect(familiar=True)
        if self is WordList.UNFAMILIAR:
            return ProgressSelect(familiar=False)
        return ProgressSelect(user_marked=True)


async def find_words_by_ids(store: WordStore, ids: Iterable[int]) -> List[WordRecord]:
    """Look up words by id, in the order requested. Unknown ids are skipped."""
    wanted = list(ids)
    if not wanted:
        return []
    async with store.transaction(read_only=True) as session:
        rows = (await session.scalars(select(Word).where(Word.id.in_(set(wanted))))).all()
    by_id = {row.id: row.to_record() for row in rows}
    return [by_id[word_id] for word_id in wanted if word_id in by_id]


async def find_word_ids(store: WordStore, field: Field, value: Any) -> List[int]:
    """Ids of words whose ``field`` column equals ``value``."""
    if field is Field.ID:
        raise ValidationError("Looking up ids by id is circular; use find_words_by_ids instead")
    stored = coerce_field_value(field, value)
    stmt = select(Word.id).where(column_for(field) == stored).order_by(Word.id.asc())
    async with store.transaction(read_only=True) as session:
        return list((await session.scalars(stmt)).all())


async def select_words(store: WordStore, selection: ProgressSelect) -> List[WordRecord]:
    if selection.limit == 0:
        return []
    async with store.transaction(read_only=True) as session:
        rows = (await session.scalars(selection.apply(select(Word)))).all()
    logger.debug(f"{selection} matched {len(rows)} words")
    return [row.to_record() for row in rows]


async def select_word_ids(store: WordStore, selection: ProgressSelect) -> List[int]:
    if selection.limit == 0:
        return []
    async with store.transaction(read_only=True) as session:
        return list((await session.scalars(selection.apply(select(Word.id)))).all())


async def select_practice_set(
    store: WordStore,
    level: Union[Level, str],
    min_practice_count: int,
    familiar: bool,
    user_marked: bool,
    num: int,
    random: bool = False,
) -> List[WordRecord]:
    """Pick up to ``num`` words for a flashcard or quiz session.

    Matches ``level``, ``practice_count >= min_practice_count`` and the exact
    ``familiar`` / ``user_marked`` flags. With ``random`` the matching set is
    shuffled before truncation; otherwise words come back in insertion order.
    """
    selection = ProgressSelect(
        level=require_level(level),
        min_practice_count=min_practice_count,
        familiar=familiar,
        user_marked=user_marked,
        limit=num,
        random=random,
    )
    return await select_words(store, selection)


async def get_unfamiliar_words(
    store: WordStore, level: Union[Level, str], num: int, random: bool = False
) -> List[WordRecord]:
    """Words of ``level`` not yet marked familiar, regardless of the review flag."""
    selection = ProgressSelect(level=require_level(level), familiar=False, limit=num, random=random)
    return await select_words(store, selection)


async def list_words(
    store: WordStore, kind: WordList, level: Optional[Union[Level, str]] = None
) -> List[WordRecord]:
    selection = kind.selection()
    if level is not None:
        selection = selection.where_level(level)
    return await select_words(store, selection)


async def _scalar(store: WordStore, stmt: Select) -> int:
    async with store.transaction(read_only=True) as session:
        value = await session.scalar(stmt)
    return int(value or 0)


async def count_words(store: WordStore, level: Optional[Union[Level, str]] = None) -> int:
    stmt = select(func.count(Word.id))
    if level is not None:
        stmt = stmt.where(Word.level == require_level(level).token)
    return await _scalar(store, stmt)


async def count_practiced(store: WordStore) -> int:
    """Number of distinct words practiced at least once."""
    return await _scalar(store, select(func.count(Word.id)).where(Word.practice_count > 0))


async def total_practice_count(store: WordStore) -> int:
    """Sum of practice events across all words."""
    return await _scalar(store, select(func.coalesce(func.sum(Word.practice_count), 0)))


async def count_familiar(store: WordStore) -> int:
    return await _scalar(store, select(func.count(Word.id)).where(Word.familiar.is_(True)))


async def count_user_marked(store: WordStore) -> int:
    return await _scalar(store, select(func.count(Word.id)).where(Word.user_marked.is_(True)))


async def count_practiced_unfamiliar(store: WordStore) -> int:
    """Words practiced at least once that are still not familiar."""
    stmt = select(func.count(Word.id)).where(Word.practice_count > 0, Word.familiar.is_(False))
    return await _scalar(store, stmt)


def _count_where(condition: Any) -> Any:
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


async def get_progress_summary(store: WordStore) -> Dict[str, int]:
    """Dashboard numbers, read in one statement so they agree with each other."""
    stmt = select(
        func.count(Word.id),
        _count_where(Word.practice_count > 0),
        func.coalesce(func.sum(Word.practice_count), 0),
        _count_where(Word.familiar.is_(True)),
        _count_where(Word.user_marked.is_(True)),
        _count_where((Word.practice_count > 0) & Word.familiar.is_(False)),
    )
    async with store.transaction(read_only=True) as session:
        row = (await session.execute(stmt)).one()
    total, practiced, practice_events, familiar, marked, practiced_unfamiliar = (int(v or 0) for v in row)
    return {
        "total": total,
        "practiced": practiced,
        "practice_events": practice_events,
        "familiar": familiar,
        "user_marked": marked,
        "practiced_unfamiliar": practiced_unfamiliar,
    }
