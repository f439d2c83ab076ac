"""
Write side of the word store.

Every operation is a single statement inside a single transaction, so a
caller that abandons an in-flight call never leaves a half-applied change.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import delete, update

from .db import Word, WordStore, column_for
from .errors import ValidationError
from .records import Field, WordRecord, coerce_field_value


@dataclass(frozen=True)
class ProgressUpdate:
    """Set of progress changes applied together to one word.

    ``increment`` bumps ``practice_count`` by one; ``familiar`` and
    ``user_marked`` are written only when not None.
    """
    increment: bool = False
    familiar: Optional[bool] = None
    user_marked: Optional[bool] = None

    def __post_init__(self) -> None:
        for field in (Field.FAMILIAR, Field.USER_MARKED):
            flag = getattr(self, field.value)
            if flag is not None:
                object.__setattr__(self, field.value, coerce_field_value(field, flag))

    def increment_practice(self) -> "ProgressUpdate":
        return replace(self, increment=True)

    def set_familiar(self, familiar: bool) -> "ProgressUpdate":
        return replace(self, familiar=familiar)

    def set_user_marked(self, user_marked: bool) -> "ProgressUpdate":
        return replace(self, user_marked=user_marked)

    @property
    def is_noop(self) -> bool:
        return not self.increment and self.familiar is None and self.user_marked is None

    def values(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if self.increment:
            # Relative update; concurrent increments never overwrite each other
            values["practice_count"] = Word.practice_count + 1
        if self.familiar is not None:
            values["familiar"] = self.familiar
        if self.user_marked is not None:
            values["user_marked"] = self.user_marked
        return values


async def update_progress(store: WordStore, word_id: int, change: ProgressUpdate) -> bool:
    """Apply ``change`` to one word in a single UPDATE.

    Returns True if a row was written. An empty update is logged and skipped;
    an unknown id writes nothing and returns False.
    """
    if change.is_noop:
        logger.info(f"No-op progress update for word {word_id}; nothing written")
        return False
    stmt = update(Word).where(Word.id == word_id).values(change.values())
    async with store.transaction() as session:
        result = await session.execute(stmt)
    if result.rowcount == 0:
        logger.warning(f"Progress update for unknown word id {word_id}")
        return False
    logger.debug(f"Updated progress of word {word_id}: {change}")
    return True


async def increment_practice(store: WordStore, word_id: int) -> bool:
    return await update_progress(store, word_id, ProgressUpdate(increment=True))


async def record_answer(store: WordStore, word_id: int, familiar: bool) -> bool:
    """Count one practice and record whether the learner knew the word."""
    return await update_progress(store, word_id, ProgressUpdate(increment=True, familiar=familiar))


async def mark_word(store: WordStore, word_id: int, marked: bool = True) -> bool:
    return await update_progress(store, word_id, ProgressUpdate(user_marked=marked))


async def update_word_field(store: WordStore, ids: Iterable[int], field: Field, value: Any) -> int:
    """Write the same value into ``field`` for every word in ``ids``.

    ``Field.ID`` is rejected. Returns the number of rows changed.
    """
    if not field.updatable:
        raise ValidationError(f"Field {field.value!r} cannot be updated")
    stored = coerce_field_value(field, value)
    targets = list(ids)
    if not targets:
        return 0
    stmt = update(Word).where(Word.id.in_(targets)).values({column_for(field): stored})
    async with store.transaction() as session:
        result = await session.execute(stmt)
    logger.debug(f"Set {field.value} on {result.rowcount} words")
    return result.rowcount


async def delete_words(store: WordStore, ids: Iterable[int]) -> int:
    targets = list(ids)
    if not targets:
        return 0
    async with store.transaction() as session:
        result = await session.execute(delete(Word).where(Word.id.in_(targets)))
    logger.debug(f"Deleted {result.rowcount} words")
    return result.rowcount


async def reset_all_progress(store: WordStore) -> int:
    """Zero practice counts and clear both flags on every word. Words are kept."""
    stmt = update(Word).values(practice_count=0, familiar=False, user_marked=False)
    async with store.transaction() as session:
        result = await session.execute(stmt)
    logger.info(f"Reset progress on {result.rowcount} words")
    return result.rowcount


async def bulk_insert_words(store: WordStore, records: Iterable[WordRecord]) -> List[int]:
    """Insert ``records`` in one transaction and return the ids assigned, in order.

    Any ``id`` set on the records is ignored. Either every row is inserted or none.
    """
    words = [
        Word(
            expression=record.expression,
            reading=record.reading,
            meaning=record.meaning,
            level=record.level.token,
            practice_count=record.practice_count,
            familiar=record.familiar,
            user_marked=record.user_marked,
        )
        for record in records
    ]
    if not words:
        return []
    async with store.transaction() as session:
        session.add_all(words)
        await session.flush()
        ids = [word.id for word in words]
    logger.debug(f"Inserted {len(ids)} words")
    return ids
