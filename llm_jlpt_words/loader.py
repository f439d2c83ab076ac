"""Read seed vocabulary from per-level CSV files."""
from __future__ import annotations

import csv
import os
from typing import List, Union

from loguru import logger

from .errors import ValidationError
from .records import Level, WordRecord, require_level

# expression, reading, meaning, tags
MIN_COLUMNS = 4


def load_csv_to_word_records(csv_path: str, level: Union[Level, str]) -> List[WordRecord]:
    """Parse one level's CSV file into records ready for ``bulk_insert_words``.

    The first row is a header. Short rows are skipped; a row with an empty
    expression, reading or meaning raises ``ValidationError``.
    """
    tier = require_level(level)
    records: List[WordRecord] = []
    skipped = 0
    with open(csv_path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.reader(f)
        next(reader, None)
        for row in reader:
            if len(row) < MIN_COLUMNS:
                skipped += 1
                logger.warning(f"{csv_path}:{reader.line_num}: expected {MIN_COLUMNS} columns, got {len(row)}; skipped")
                continue
            try:
                records.append(WordRecord(expression=row[0], reading=row[1], meaning=row[2], level=tier))
            except ValidationError as exc:
                raise ValidationError(f"{csv_path}:{reader.line_num}: {exc}") from exc
    logger.debug(f"Loaded {len(records)} {tier} words from {csv_path} ({skipped} skipped)")
    return records


def load_level_directory(directory: str) -> List[WordRecord]:
    """Load ``n5.csv`` through ``n1.csv`` from ``directory``, easiest level first."""
    records: List[WordRecord] = []
    for tier in Level.ordered():
        path = os.path.join(directory, f"{tier.token}.csv")
        if not os.path.exists(path):
            logger.warning(f"No word list for {tier} at {path}")
            continue
        records.extend(load_csv_to_word_records(path, tier))
    return records
