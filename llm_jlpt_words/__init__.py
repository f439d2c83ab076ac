"""
LLM JLPT Words Plugin

Async SQLite store for JLPT vocabulary and per-word study progress.
"""
from loguru import logger

from . import config
from . import errors
from . import records
from . import db
from . import queries
from . import mutations
from . import loader

if not config.DEBUG_MODE:
    logger.disable(__name__)

__version__ = "0.1.0"
__all__ = ["config", "errors", "records", "db", "queries", "mutations", "loader"]
