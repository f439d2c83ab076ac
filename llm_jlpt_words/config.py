"""Environment-driven settings for the word store."""
import os
from typing import Optional

DB_PATH: str = os.environ.get("LLM_JP_WORDS_DB", "words_database.db")
POOL_SIZE: int = int(os.environ.get("LLM_JP_WORDS_POOL_SIZE", "5"))
DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


def database_url(path: Optional[str] = None) -> str:
    """Build the async SQLite URL for ``path`` (defaults to ``DB_PATH``)."""
    return f"sqlite+aiosqlite:///{path or DB_PATH}"
