"""
Design Table Schema
===================

Typed schema of one long-format design row and the load-time validation of
per-treatment design tables.

A design table holds one row per treatment x block x card x alternative.
Every card must carry the same set of alternatives, each exactly once.
"""

from dataclasses import MISSING, dataclass, fields
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from dce_cards import constants as C
from dce_cards.utils.logging_config import get_logger
from dce_cards.utils.validation import (
    DesignSchemaError,
    KeyIntegrityError,
    validate_categories,
    validate_group_sizes,
    validate_numeric_columns,
    validate_required_columns,
    validate_unique_key,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class DesignRow:
    """One alternative of one choice card."""
    treatment: str
    block: int
    card: int
    alt: int
    cost: float
    nature: float
    farmland: float
    meals_nature: float
    meals_farmland: float
    distance: float
    title: Optional[str] = None
    card_id: Optional[int] = None
    card_dcreate: Optional[int] = None


REQUIRED_COLUMNS = [f.name for f in fields(DesignRow) if f.default is MISSING]
OPTIONAL_COLUMNS = [f.name for f in fields(DesignRow) if f.default is not MISSING]
INTEGER_COLUMNS = [f.name for f in fields(DesignRow) if f.type is int]
NUMERIC_COLUMNS = [f.name for f in fields(DesignRow) if f.type in (int, float)]


# =============================================================================
# NORMALISATION
# =============================================================================

def apply_column_aliases(df: pd.DataFrame) -> pd.DataFrame:
    """Rename design-tool spellings (e.g. `dist`) to canonical names."""
    renames = {
        alias: canonical for alias, canonical in C.COLUMN_ALIASES.items()
        if alias in df.columns and canonical not in df.columns
    }
    return df.rename(columns=renames)


def _stamp_treatment(df: pd.DataFrame, treatment: Optional[str],
                     source: str) -> pd.DataFrame:
    if 'treatment' not in df.columns:
        if treatment is None:
            raise DesignSchemaError(
                f"{source}: no 'treatment' column and no treatment label given"
            )
        df = df.copy()
        df.insert(0, 'treatment', treatment)
        return df

    if treatment is not None:
        other = sorted(set(df['treatment'].astype(str)) - {treatment})
        if other:
            raise DesignSchemaError(
                f"{source}: declared as treatment '{treatment}' but contains {other}"
            )
    return df


def _order_columns(df: pd.DataFrame) -> pd.DataFrame:
    known = C.KEY_COLUMNS + C.DESIGN_ID_COLUMNS + C.BASE_ATTRIBUTES + C.TEXT_ATTRIBUTES
    leading = [c for c in known if c in df.columns]
    rest = [c for c in df.columns if c not in leading]
    return df[leading + rest]


# =============================================================================
# VALIDATION
# =============================================================================

def validate_design_keys(df: pd.DataFrame, source: str = 'design') -> List[int]:
    """
    Check the card/alternative structure of a long design table.

    Returns:
        Sorted list of alternative indices

    Raises:
        KeyIntegrityError: On duplicate keys or cards missing an alternative
    """
    validate_unique_key(df, C.KEY_COLUMNS, source)

    alts = sorted(int(a) for a in df['alt'].unique())
    if len(alts) < 2:
        raise KeyIntegrityError(
            f"{source}: a choice card needs at least two alternatives, found {alts}"
        )
    validate_group_sizes(df, C.CARD_KEY, expected=len(alts), source=source)
    return alts


def prepare_design(df: pd.DataFrame,
                   treatment: Optional[str] = None,
                   source: str = 'design',
                   attribute_levels: Optional[Dict[str, list]] = None) -> pd.DataFrame:
    """
    Validate a long-format design table and return a normalised copy.

    Args:
        df: Raw design table
        treatment: Treatment label to stamp when the table has none
        source: Table name or path for error messages
        attribute_levels: Optional recognised levels per attribute

    Returns:
        New DataFrame with canonical column names, integer identifiers and
        numeric attributes

    Raises:
        DesignSchemaError, KeyIntegrityError, UnsupportedCategoryError
    """
    df = apply_column_aliases(df)
    df = _stamp_treatment(df, treatment, source)

    validate_required_columns(df, REQUIRED_COLUMNS, source)
    validate_numeric_columns(df, NUMERIC_COLUMNS, source)

    df = df.copy()
    df['treatment'] = df['treatment'].astype(str)
    validate_categories(df, 'treatment', C.SUPPORTED_TREATMENTS, source)

    for col in NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col])
    for col in INTEGER_COLUMNS:
        if (df[col] % 1 != 0).any():
            raise DesignSchemaError(f"{source}: column '{col}' must hold whole numbers")
        df[col] = df[col].astype(int)

    for attr, levels in (attribute_levels or {}).items():
        validate_categories(df, attr, levels, source)

    validate_design_keys(df, source)

    return _order_columns(df).reset_index(drop=True)


def load_design(path, treatment: Optional[str] = None,
                attribute_levels: Optional[Dict[str, list]] = None) -> pd.DataFrame:
    """
    Load one design table from CSV and validate it.

    Args:
        path: Path to CSV design file
        treatment: Treatment label of this file (required when the file has
            no treatment column)
        attribute_levels: Optional recognised levels per attribute

    Returns:
        Validated long-format design
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Design file not found: {path}")

    df = pd.read_csv(path)
    design = prepare_design(df, treatment, source=str(path),
                            attribute_levels=attribute_levels)

    logger.info(
        f"Loaded {len(design)} design rows from {path} "
        f"({design.groupby(C.CARD_KEY).ngroups} cards)"
    )
    return design
