from __future__ import annotations

from functools import lru_cache
from pathlib import Path

SQL_DIR = Path(__file__).with_name("sql")


@lru_cache(maxsize=None)
def load_sql(name: str) -> str:
    path = SQL_DIR / name
    if path.suffix != ".sql" or path.parent != SQL_DIR:
        raise ValueError(f"unknown sql file: {name}")
    return path.read_text(encoding="utf-8").strip()
