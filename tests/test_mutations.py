"""Tests for progress updates, field updates, deletes, resets and bulk insert."""
import asyncio

import pytest
import pytest_asyncio
from loguru import logger
from sqlalchemy import text, update

from llm_jlpt_words import config, db, mutations, queries
from llm_jlpt_words.db import Word
from llm_jlpt_words.errors import StorageError, ValidationError
from llm_jlpt_words.mutations import ProgressUpdate
from llm_jlpt_words.records import Field, Level, WordRecord

SEED = [
    WordRecord(expression="一", reading="いち", meaning="one", level=Level.N5),
    WordRecord(expression="二", reading="に", meaning="two", level=Level.N5),
    WordRecord(expression="時間", reading="じかん", meaning="time", level=Level.N4),
    WordRecord(expression="経済", reading="けいざい", meaning="economy", level=Level.N1),
    WordRecord(expression="政治", reading="せいじ", meaning="politics", level=Level.N1),
]


@pytest_asyncio.fixture
async def store(tmp_path):
    store = db.WordStore(config.database_url(str(tmp_path / "test_mutations.db")))
    await db.init_db(store)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def seeded(store):
    ids = await mutations.bulk_insert_words(store, SEED)
    return store, ids


@pytest.fixture
def captured_logs():
    """Collect package log messages while the test runs."""
    messages = []
    logger.enable("llm_jlpt_words")
    handler_id = logger.add(messages.append, level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)
    if not config.DEBUG_MODE:
        logger.disable("llm_jlpt_words")


async def _progress(store, word_id):
    (word,) = await queries.find_words_by_ids(store, [word_id])
    return word.practice_count, word.familiar, word.user_marked


# ── ProgressUpdate ────────────────────────────────────────────────

def test_progress_update_setters_build_new_instances():
    base = ProgressUpdate()
    change = base.increment_practice().set_familiar(True).set_user_marked(False)
    assert base.is_noop
    assert change == ProgressUpdate(increment=True, familiar=True, user_marked=False)
    assert not change.is_noop


def test_progress_update_flags_are_coerced():
    assert ProgressUpdate().set_familiar("false").familiar is False
    assert ProgressUpdate().set_user_marked("no").user_marked is False
    assert ProgressUpdate(familiar=1).familiar is True
    with pytest.raises(ValidationError):
        ProgressUpdate().set_familiar("maybe")
    with pytest.raises(ValidationError):
        ProgressUpdate(user_marked="sometimes")


@pytest.mark.asyncio
async def test_unparseable_flag_writes_nothing(seeded):
    store, ids = seeded
    with pytest.raises(ValidationError):
        await mutations.record_answer(store, ids[0], familiar="perhaps")
    with pytest.raises(ValidationError):
        await mutations.mark_word(store, ids[0], marked="later")
    assert await _progress(store, ids[0]) == (0, False, False)


@pytest.mark.asyncio
async def test_record_answer_accepts_string_false(seeded):
    store, ids = seeded
    await mutations.record_answer(store, ids[0], familiar="false")
    assert await _progress(store, ids[0]) == (1, False, False)


@pytest.mark.asyncio
async def test_increment_only_leaves_flags_default(seeded):
    store, ids = seeded
    assert await mutations.increment_practice(store, ids[0]) is True
    assert await _progress(store, ids[0]) == (1, False, False)


@pytest.mark.asyncio
async def test_set_familiar_only_leaves_count_default(seeded):
    store, ids = seeded
    await mutations.update_progress(store, ids[0], ProgressUpdate().set_familiar(True))
    assert await _progress(store, ids[0]) == (0, True, False)


@pytest.mark.asyncio
async def test_mark_only_leaves_other_fields_default(seeded):
    store, ids = seeded
    await mutations.mark_word(store, ids[2])
    assert await _progress(store, ids[2]) == (0, False, True)
    await mutations.mark_word(store, ids[2], marked=False)
    assert await _progress(store, ids[2]) == (0, False, False)


@pytest.mark.asyncio
async def test_composite_update_applies_every_field(seeded):
    store, ids = seeded
    change = ProgressUpdate(increment=True, familiar=True, user_marked=True)
    assert await mutations.update_progress(store, ids[1], change) is True
    assert await _progress(store, ids[1]) == (1, True, True)


@pytest.mark.asyncio
async def test_existing_progress_updates_only_selected_fields(seeded):
    store, ids = seeded
    await mutations.update_progress(store, ids[1], ProgressUpdate(increment=True, user_marked=True))
    await mutations.record_answer(store, ids[1], familiar=True)
    assert await _progress(store, ids[1]) == (2, True, True)
    await mutations.record_answer(store, ids[1], familiar=False)
    assert await _progress(store, ids[1]) == (3, False, True)


@pytest.mark.asyncio
async def test_noop_update_changes_nothing_and_is_logged(seeded, captured_logs):
    store, ids = seeded
    before = await queries.find_words_by_ids(store, ids)
    assert await mutations.update_progress(store, ids[0], ProgressUpdate()) is False
    assert await queries.find_words_by_ids(store, ids) == before
    assert any("INFO" in m and "No-op progress update" in m for m in captured_logs)


@pytest.mark.asyncio
async def test_update_unknown_id_writes_nothing(seeded, captured_logs):
    store, ids = seeded
    assert await mutations.increment_practice(store, 4242) is False
    assert await queries.total_practice_count(store) == 0
    assert any("WARNING" in m and "4242" in m for m in captured_logs)


@pytest.mark.asyncio
async def test_reads_do_not_wait_for_an_open_writer(seeded):
    store, ids = seeded
    async with store.transaction() as session:
        await session.execute(update(Word).where(Word.id == ids[0]).values(practice_count=Word.practice_count + 1))
        # Another connection reads the last committed state without blocking
        assert await queries.total_practice_count(store) == 0
        assert await queries.count_words(store) == 5
    assert await queries.total_practice_count(store) == 1


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(seeded):
    store, ids = seeded
    results = await asyncio.gather(*(mutations.increment_practice(store, ids[0]) for _ in range(25)))
    assert all(results)
    assert await _progress(store, ids[0]) == (25, False, False)


# ── Field updates ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_update_word_field_applies_to_every_id(seeded):
    store, ids = seeded
    assert await mutations.update_word_field(store, [ids[0], ids[1]], Field.MEANING, "number") == 2
    words = await queries.find_words_by_ids(store, ids[:3])
    assert [w.meaning for w in words] == ["number", "number", "time"]


@pytest.mark.asyncio
async def test_update_word_field_coerces_values(seeded):
    store, ids = seeded
    await mutations.update_word_field(store, [ids[2]], Field.LEVEL, "N3")
    await mutations.update_word_field(store, [ids[2]], Field.FAMILIAR, "true")
    await mutations.update_word_field(store, [ids[2]], Field.PRACTICE_COUNT, 7)
    (word,) = await queries.find_words_by_ids(store, [ids[2]])
    assert (word.level, word.familiar, word.practice_count) == (Level.N3, True, 7)


@pytest.mark.asyncio
async def test_update_word_field_rejects_id(seeded):
    store, ids = seeded
    before = await queries.find_words_by_ids(store, ids)
    with pytest.raises(ValidationError):
        await mutations.update_word_field(store, ids, Field.ID, 99)
    assert await queries.find_words_by_ids(store, ids) == before


@pytest.mark.asyncio
async def test_update_word_field_rejects_bad_level(seeded):
    store, ids = seeded
    with pytest.raises(ValidationError):
        await mutations.update_word_field(store, ids, Field.LEVEL, "n7")
    assert await queries.count_words(store, Level.N5) == 2


# ── Delete / reset ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_delete_words_removes_rows_and_progress(seeded):
    store, ids = seeded
    await mutations.record_answer(store, ids[0], familiar=True)
    assert await mutations.delete_words(store, [ids[0], 777]) == 1
    assert await queries.find_words_by_ids(store, [ids[0]]) == []
    assert await queries.count_familiar(store) == 0
    assert await mutations.delete_words(store, []) == 0


@pytest.mark.asyncio
async def test_ids_are_not_reused_after_delete(seeded):
    store, ids = seeded
    await mutations.delete_words(store, [ids[-1]])
    (new_id,) = await mutations.bulk_insert_words(store, [SEED[-1]])
    assert new_id > ids[-1]


@pytest.mark.asyncio
async def test_reset_all_progress_keeps_words(seeded):
    store, ids = seeded
    await mutations.update_progress(store, ids[0], ProgressUpdate(increment=True, familiar=True, user_marked=True))
    await mutations.increment_practice(store, ids[3])
    before = await queries.find_words_by_ids(store, ids)

    assert await mutations.reset_all_progress(store) == 5

    after = await queries.find_words_by_ids(store, ids)
    assert len(after) == 5
    for old, new in zip(before, after):
        assert (old.expression, old.reading, old.meaning, old.level) == (new.expression, new.reading, new.meaning, new.level)
        assert (new.practice_count, new.familiar, new.user_marked) == (0, False, False)


@pytest.mark.asyncio
async def test_drop_schema_removes_every_word(seeded):
    store, _ = seeded
    await db.drop_schema(store)
    assert await db.is_db_initialized(store)
    assert await queries.count_words(store) == 0
    (first_id,) = await mutations.bulk_insert_words(store, [SEED[0]])
    assert first_id == 1


# ── Bulk insert ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_bulk_insert_assigns_ids_in_order(store):
    ids = await mutations.bulk_insert_words(store, SEED)
    assert ids == sorted(ids)
    assert len(set(ids)) == 5
    words = await queries.find_words_by_ids(store, ids)
    assert [w.expression for w in words] == [r.expression for r in SEED]
    assert await mutations.bulk_insert_words(store, []) == []


@pytest.mark.asyncio
async def test_bulk_insert_ignores_record_ids(store):
    record = WordRecord(expression="一", reading="いち", meaning="one", level=Level.N5, id=500)
    (word_id,) = await mutations.bulk_insert_words(store, [record])
    assert word_id == 1


@pytest.mark.asyncio
async def test_bulk_insert_is_all_or_nothing(store):
    broken = WordRecord(expression="三", reading="さん", meaning="three", level=Level.N5)
    # Slip past record validation so the database constraint fires mid-batch
    object.__setattr__(broken, "practice_count", -1)
    with pytest.raises(StorageError) as excinfo:
        await mutations.bulk_insert_words(store, SEED[:2] + [broken])
    assert excinfo.value.__cause__ is not None
    assert await queries.count_words(store) == 0


# ── Storage failures ──────────────────────────────────────────────

@pytest.mark.asyncio
async def test_storage_failure_is_wrapped(tmp_path):
    store = db.WordStore(config.database_url(str(tmp_path / "missing" / "dir" / "words.db")))
    try:
        with pytest.raises(StorageError):
            await queries.count_words(store)
        with pytest.raises(StorageError):
            await db.init_db(store)
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_constraint_violation_surfaces_as_storage_error(store):
    with pytest.raises(StorageError):
        async with store.transaction() as session:
            await session.execute(text(
                "INSERT INTO words (expression, reading, meaning, level) VALUES ('x', 'x', 'x', 'n9')"
            ))
    assert await queries.count_words(store) == 0
