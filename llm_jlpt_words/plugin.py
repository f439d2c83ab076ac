import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
import llm  # type: ignore

from . import config, db, queries, mutations
from .records import Level

T = TypeVar("T")


def _run(action: Callable[[db.WordStore], Awaitable[T]], path: Optional[str] = None) -> T:
    """Open a store on the configured database, run ``action`` and close it."""
    async def runner() -> T:
        async with db.WordStore(config.database_url(path)) as store:
            return await action(store)
    return asyncio.run(runner())


@llm.hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:

    @cli.command("jp-words-init-db")  # type: ignore[misc]
    @click.option("--db-path", default=None, help="SQLite file (defaults to $LLM_JP_WORDS_DB)")
    def init_db(db_path: Optional[str]) -> None:
        """Create the word database tables."""
        _run(db.init_db, db_path)
        click.echo("Word database initialized.")

    @cli.command("jp-words-stats")  # type: ignore[misc]
    @click.option("--db-path", default=None, help="SQLite file (defaults to $LLM_JP_WORDS_DB)")
    def stats(db_path: Optional[str]) -> None:
        """Show study progress across all words."""
        summary = _run(queries.get_progress_summary, db_path)
        click.echo(f"📊 {summary['total']} words")
        click.echo(f"   practiced:            {summary['practiced']}")
        click.echo(f"   practice events:      {summary['practice_events']}")
        click.echo(f"   familiar:             {summary['familiar']}")
        click.echo(f"   marked for review:    {summary['user_marked']}")
        click.echo(f"   practiced, not known: {summary['practiced_unfamiliar']}")

    @cli.command("jp-words-list")  # type: ignore[misc]
    @click.argument("kind", type=click.Choice([k.value for k in queries.WordList]))
    @click.option("--level", type=click.Choice([lv.token for lv in Level]), default=None, help="Only this JLPT level")
    @click.option("--db-path", default=None, help="SQLite file (defaults to $LLM_JP_WORDS_DB)")
    def list_words(kind: str, level: Optional[str], db_path: Optional[str]) -> None:
        """List practiced, familiar, unfamiliar or marked words."""
        words = _run(lambda store: queries.list_words(store, queries.WordList(kind), level), db_path)
        if not words:
            click.echo(f"No {kind} words.")
            return
        for word in words:
            star = "★" if word.user_marked else " "
            click.echo(f"{star} {word.id:5d} [{word.level}] {word.expression} ({word.reading}) - {word.meaning}  x{word.practice_count}")

    @cli.command("jp-words-reset-progress")  # type: ignore[misc]
    @click.option("--db-path", default=None, help="SQLite file (defaults to $LLM_JP_WORDS_DB)")
    @click.confirmation_option(prompt="Reset practice counts and flags for every word?")
    def reset_progress(db_path: Optional[str]) -> None:
        """Zero all study progress. Words are kept."""
        count = _run(mutations.reset_all_progress, db_path)
        click.echo(f"Progress reset for {count} words.")

    @cli.command("jp-words-drop-db")  # type: ignore[misc]
    @click.option("--db-path", default=None, help="SQLite file (defaults to $LLM_JP_WORDS_DB)")
    @click.confirmation_option(prompt="Delete every word and recreate the tables?")
    def drop_db(db_path: Optional[str]) -> None:
        """Drop and recreate the schema, removing all words."""
        _run(db.drop_schema, db_path)
        click.echo("Word database recreated empty.")
