"""
Design-to-Cards Transformer
===========================

Turns validated long-format design tables (one row per alternative) into
wide choice cards (one row per treatment x block x card) with the image
references and card URLs the survey tool mail-merges.

Card layout:
    treatment, block, card, [card_id, card_dcreate]
    cost1 ... distance1, title1          (alternative 1)
    image_cost ... image_distance        (alternative-1 levels as images)
    card_url_1 ... card_url_6, card_url_example
    cost2 ... distance2, title2          (alternative 2, then any others)
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from dce_cards import constants as C
from dce_cards.config import DesignSettings, OutputSettings
from dce_cards.design.schema import validate_design_keys
from dce_cards.utils.io import write_tables
from dce_cards.utils.logging_config import get_logger
from dce_cards.utils.validation import (
    DesignSchemaError,
    validate_categories,
    validate_unique_key,
)

logger = get_logger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def format_level(value) -> str:
    """Render an attribute level the way asset file names spell it (2.0 -> '2')."""
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def card_url(base_url: str, treatment: str, block, index,
             extension: str = C.IMAGE_EXTENSION_DEFAULT) -> str:
    """External URL of one rendered card image."""
    return f"{base_url}{treatment}_{format_level(block)}_{index}{extension}"


def card_alternatives(cards: pd.DataFrame) -> List[int]:
    """Alternative indices present in a wide table, read off the cost columns."""
    prefix = C.COST_ATTRIBUTE
    return sorted(
        int(col[len(prefix):]) for col in cards.columns
        if col.startswith(prefix) and col[len(prefix):].isdigit()
    )


def _per_alt_columns(cards: pd.DataFrame, alt: int) -> List[str]:
    names = C.BASE_ATTRIBUTES + C.TEXT_ATTRIBUTES
    return [f'{name}{alt}' for name in names if f'{name}{alt}' in cards.columns]


def url_columns(n_url_cards: int = C.N_URL_CARDS_DEFAULT) -> List[str]:
    return [f'card_url_{i}' for i in range(1, n_url_cards + 1)] + ['card_url_example']


def image_columns() -> List[str]:
    return [f'image_{attr}' for attr in C.IMAGE_ATTRIBUTES] + ['image_distance']


# =============================================================================
# TRANSFORMATIONS
# =============================================================================

def concatenate_designs(tables: Sequence[pd.DataFrame],
                        sources: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Union per-treatment design tables into one long table.

    All rows are kept; nothing is de-duplicated.

    Args:
        tables: Validated long-format designs
        sources: Names of the tables for error messages

    Returns:
        Combined long-format design

    Raises:
        DesignSchemaError: If column sets differ between tables
        KeyIntegrityError: If a (treatment, block, card, alt) key repeats
    """
    if not tables:
        raise DesignSchemaError("No design tables to concatenate")
    if sources is None:
        sources = [f'table {i}' for i in range(len(tables))]

    reference = list(tables[0].columns)
    for table, source in zip(tables[1:], sources[1:]):
        missing = sorted(set(reference) - set(table.columns))
        extra = sorted(set(table.columns) - set(reference))
        if missing or extra:
            raise DesignSchemaError(
                f"{source}: columns differ from {sources[0]} "
                f"(missing {missing}, extra {extra})"
            )

    combined = pd.concat([t[reference] for t in tables], ignore_index=True)
    validate_design_keys(combined, 'combined design')

    logger.info(f"Combined {len(tables)} design table(s) into {len(combined)} rows")
    return combined


def reshape_to_wide(design: pd.DataFrame, source: str = 'combined design') -> pd.DataFrame:
    """
    Pivot the alternative dimension into column suffixes.

    Design-tool identifiers (card_id, card_dcreate) are taken from the
    lowest alternative; every other column is suffixed by its alt value.

    Returns:
        One row per (treatment, block, card)
    """
    alts = validate_design_keys(design, source)

    id_cols = [c for c in C.DESIGN_ID_COLUMNS if c in design.columns]
    value_cols = [c for c in design.columns if c not in C.KEY_COLUMNS + id_cols]

    ordered = design.sort_values(C.KEY_COLUMNS)
    wide = ordered.pivot(index=C.CARD_KEY, columns='alt', values=value_cols)
    wide.columns = [f'{col}{alt}' for col, alt in wide.columns]
    wide = wide[[f'{col}{alt}' for alt in alts for col in value_cols]]

    # pivot upcasts mixed frames to object; restore per-column dtypes
    for alt in alts:
        for col in value_cols:
            wide[f'{col}{alt}'] = wide[f'{col}{alt}'].astype(design[col].dtype)

    if id_cols:
        wide = ordered.groupby(C.CARD_KEY)[id_cols].first().join(wide)

    wide = wide.reset_index()
    validate_unique_key(wide, C.CARD_KEY, source)
    return wide


def derive_presentation_fields(wide: pd.DataFrame,
                               settings: Optional[DesignSettings] = None) -> pd.DataFrame:
    """
    Add image references and card URLs to a wide card table.

    - image_<attr>: image base path + attribute + '_' + alternative-1 level
    - image_distance: as above under the treatment's distance namespace
    - card_url_1..N, card_url_example: base URL + treatment + block + a fixed
      card index. These follow the asset naming convention for a block and
      do not look at the row's own card number.

    Raises:
        UnsupportedCategoryError: If a treatment has no distance namespace
    """
    settings = settings or DesignSettings(inputs={})
    validate_categories(wide, 'treatment', C.DISTANCE_IMAGE_NAMESPACES, 'card table')

    alts = card_alternatives(wide)
    if not alts:
        raise DesignSchemaError("card table: no alternative cost columns found")
    first = alts[0]

    cards = wide.copy()
    base = settings.image_base_path
    ext = settings.image_extension

    for attr in C.IMAGE_ATTRIBUTES:
        levels = cards[f'{attr}{first}'].map(format_level)
        cards[f'image_{attr}'] = base + attr + '_' + levels + ext

    namespace = cards['treatment'].map(C.DISTANCE_IMAGE_NAMESPACES)
    distance = cards[f'distance{first}'].map(format_level)
    cards['image_distance'] = base + namespace + '_' + distance + ext

    indices = list(range(1, settings.n_url_cards + 1)) + [settings.example_card_index]
    for col, index in zip(url_columns(settings.n_url_cards), indices):
        cards[col] = [
            card_url(settings.card_base_url, treatment, block, index, ext)
            for treatment, block in zip(cards['treatment'], cards['block'])
        ]

    return cards


def order_card_columns(cards: pd.DataFrame,
                       n_url_cards: int = C.N_URL_CARDS_DEFAULT,
                       keep_extra: bool = False) -> pd.DataFrame:
    """
    Arrange a card table in mail-merge order.

    Args:
        cards: Wide table with presentation fields
        n_url_cards: Number of numbered card URLs
        keep_extra: Append columns outside the card layout instead of dropping

    Returns:
        Card table with deterministic column order
    """
    alts = card_alternatives(cards)
    ids = [c for c in C.CARD_KEY + C.DESIGN_ID_COLUMNS if c in cards.columns]

    ordered = ids + _per_alt_columns(cards, alts[0])
    ordered += image_columns() + url_columns(n_url_cards)
    for alt in alts[1:]:
        ordered += _per_alt_columns(cards, alt)

    missing = [c for c in ordered if c not in cards.columns]
    if missing:
        raise DesignSchemaError(f"card table: missing columns {missing}")

    if keep_extra:
        ordered += [c for c in cards.columns if c not in ordered]

    return cards[ordered].sort_values(C.CARD_KEY).reset_index(drop=True)


def build_card_tables(tables: Sequence[pd.DataFrame],
                      settings: Optional[DesignSettings] = None,
                      sources: Optional[Sequence[str]] = None
                      ) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Run the whole transformer in memory.

    Returns:
        Tuple of (combined long design, full wide design, card database)
    """
    settings = settings or DesignSettings(inputs={})

    combined = concatenate_designs(tables, sources)
    wide = reshape_to_wide(combined)
    cards = derive_presentation_fields(wide, settings)

    wide_full = order_card_columns(cards, settings.n_url_cards, keep_extra=True)
    card_database = order_card_columns(cards, settings.n_url_cards)

    logger.info(
        f"Built {len(card_database)} cards "
        f"({card_database['treatment'].nunique()} treatment(s), "
        f"{card_database.groupby(['treatment', 'block']).ngroups} block(s))"
    )
    return combined, wide_full, card_database


# =============================================================================
# OUTPUT
# =============================================================================

def write_card_tables(combined: pd.DataFrame, wide: pd.DataFrame,
                      card_database: pd.DataFrame,
                      output: OutputSettings) -> List[Path]:
    """
    Write the combined design, the wide design and the card database.

    The three tables are replaced together; if any of them cannot be written,
    none of the targets changes.
    """
    return write_tables([
        (combined, output.path('combined_design')),
        (wide, output.path('wide_design')),
        (card_database, output.path('card_database')),
    ])
