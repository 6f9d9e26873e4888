"""Table input/output helpers."""

import os
from pathlib import Path
from typing import List, Sequence, Tuple

import pandas as pd

from dce_cards.utils.logging_config import get_logger

logger = get_logger(__name__)


def _tmp_path(path: Path) -> Path:
    return path.with_name(path.name + '.tmp')


def write_tables(tables: Sequence[Tuple[pd.DataFrame, object]]) -> List[Path]:
    """
    Write several tables to CSV as one unit.

    Every table is written and closed in a temporary sibling first. Only when
    all of them succeeded are the temporaries moved over their targets, so a
    failed write leaves every target untouched.

    Args:
        tables: (DataFrame, path) pairs

    Returns:
        Written paths, in input order
    """
    pending = []
    try:
        for df, path in tables:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = _tmp_path(path)
            pending.append((df, path, tmp_path))
            with open(tmp_path, 'w', newline='', encoding='utf-8') as f:
                df.to_csv(f, index=False)

        for _, path, tmp_path in pending:
            os.replace(tmp_path, path)
    finally:
        for _, _, tmp_path in pending:
            if tmp_path.exists():
                tmp_path.unlink()

    for df, path, _ in pending:
        logger.info(f"Wrote {len(df):,} rows to {path}")
    return [path for _, path, _ in pending]


def write_table(df: pd.DataFrame, path) -> Path:
    """Write a table to CSV without leaving a partial file behind."""
    return write_tables([(df, path)])[0]
