"""
Table Validation Utilities
==========================

Error types and column checks shared by the design transformer and the
respondent simulator. Every check raises; nothing is coerced silently.
"""

from typing import Iterable, List, Optional

import pandas as pd


# =============================================================================
# ERROR TYPES
# =============================================================================

class DesignSchemaError(ValueError):
    """Missing or inconsistent columns, or values of the wrong type."""


class KeyIntegrityError(ValueError):
    """Duplicate keys or malformed groupings."""


class UnsupportedCategoryError(ValueError):
    """A treatment or attribute level outside the recognised enumeration."""


# =============================================================================
# COLUMN CHECKS
# =============================================================================

def validate_required_columns(df: pd.DataFrame, required_columns: List[str],
                              source: str = 'table') -> None:
    """
    Validate that all required columns exist in the dataframe.

    Args:
        df: DataFrame to validate
        required_columns: List of required column names
        source: Table name or path for error messages

    Raises:
        DesignSchemaError: If any required columns are missing
    """
    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        available = sorted(df.columns.tolist())
        raise DesignSchemaError(
            f"{source}: Missing required columns: {missing}\n"
            f"Available columns: {available}"
        )


def validate_numeric_columns(df: pd.DataFrame, columns: Iterable[str],
                             source: str = 'table') -> None:
    """Raise if any of `columns` holds non-numeric or missing values."""
    for col in columns:
        values = pd.to_numeric(df[col], errors='coerce')
        bad = df.loc[values.isna(), col]
        if len(bad):
            examples = bad.head(3).tolist()
            raise DesignSchemaError(
                f"{source}: column '{col}' has {len(bad)} non-numeric or missing "
                f"value(s), e.g. {examples}"
            )


def validate_unique_key(df: pd.DataFrame, key: List[str],
                        source: str = 'table') -> None:
    """Raise if any combination of `key` columns appears more than once."""
    dup_mask = df.duplicated(subset=key, keep=False)
    if dup_mask.any():
        dups = df.loc[dup_mask, key].drop_duplicates()
        examples = dups.head(5).to_dict('records')
        raise KeyIntegrityError(
            f"{source}: {len(dups)} duplicated {tuple(key)} key(s), e.g. {examples}"
        )


def validate_categories(df: pd.DataFrame, column: str, allowed: Iterable,
                        source: str = 'table') -> None:
    """Raise if `column` holds values outside `allowed`."""
    allowed = list(allowed)
    unknown = sorted(set(df[column].unique()) - set(allowed), key=str)
    if unknown:
        raise UnsupportedCategoryError(
            f"{source}: unsupported {column} value(s) {unknown}; "
            f"expected one of {allowed}"
        )


def validate_group_sizes(df: pd.DataFrame, by: List[str],
                         expected: Optional[int] = None,
                         source: str = 'table') -> int:
    """
    Check that every group defined by `by` has the same number of rows.

    Args:
        df: Table to check
        by: Grouping columns
        expected: Required group size (default: the size of the first group)
        source: Table name or path for error messages

    Returns:
        The common group size

    Raises:
        KeyIntegrityError: If group sizes differ
    """
    sizes = df.groupby(by, sort=True).size()
    if sizes.empty:
        raise KeyIntegrityError(f"{source}: no rows to group by {tuple(by)}")

    if expected is None:
        expected = int(sizes.iloc[0])

    wrong = sizes[sizes != expected]
    if len(wrong):
        examples = {k: int(v) for k, v in wrong.head(5).items()}
        raise KeyIntegrityError(
            f"{source}: expected {expected} row(s) per {tuple(by)} group, "
            f"found {examples}"
        )
    return int(expected)
