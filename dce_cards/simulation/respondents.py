"""
Respondent-Choice Simulator
===========================

Synthesizes a panel of pseudo-respondents over the combined design with
uniformly random choices. The panel exercises every card of every block so
that the model fits can show whether the design identifies the parameters
before any real survey data exists.

Each replication is an exact copy of the design. Within a copy, every
(treatment, block) occasion set becomes one respondent, so a design with
2 treatments x 6 blocks yields 12 respondents per replication.

Identifiers:
    ind_id          consecutive row blocks of one respondent's occasion set
    pooled_card_id  dense id of (treatment, block, card), shared by respondents
    ind_card_id     dense id of (ind_id, pooled_card_id), one choice occasion

Usage:
    panel = simulate_panel(design, n_replications=100, seed=42)
"""

from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from dce_cards import constants as C
from dce_cards.utils.logging_config import get_logger
from dce_cards.utils.validation import KeyIntegrityError, validate_group_sizes

logger = get_logger(__name__)

RESPONDENT_KEY = ['treatment', 'block']


# =============================================================================
# REPLICATION
# =============================================================================

def rows_per_respondent(design: pd.DataFrame) -> int:
    """
    Number of design rows one respondent sees (cards x alternatives in a block).

    Raises:
        KeyIntegrityError: If blocks differ in size
    """
    return validate_group_sizes(design, RESPONDENT_KEY, source='combined design')


def respondents_per_replication(design: pd.DataFrame) -> int:
    return len(design) // rows_per_respondent(design)


def replications_for(n_respondents: int, design: pd.DataFrame) -> int:
    """
    Replications needed for `n_respondents` respondents.

    Raises:
        KeyIntegrityError: If the respondent count is not a whole number of
            design copies
    """
    per_copy = respondents_per_replication(design)
    if n_respondents <= 0 or n_respondents % per_copy != 0:
        raise KeyIntegrityError(
            f"{n_respondents} respondents is not a multiple of the "
            f"{per_copy} respondents in one copy of the design"
        )
    return n_respondents // per_copy


def replicate_design(design: pd.DataFrame, n_replications: int) -> pd.DataFrame:
    """Stack `n_replications` exact copies of the design, sorted by key."""
    if n_replications < 1:
        raise ValueError(f"n_replications must be positive, got {n_replications}")

    ordered = design.sort_values(C.KEY_COLUMNS).reset_index(drop=True)
    return pd.concat([ordered] * n_replications, ignore_index=True)


# =============================================================================
# IDENTIFIERS
# =============================================================================

def assign_identifiers(panel: pd.DataFrame, block_size: int) -> pd.DataFrame:
    """
    Add ind_id, pooled_card_id and ind_card_id (all 1-based and dense).

    Args:
        panel: Replicated design in respondent order
        block_size: Rows per respondent

    Raises:
        KeyIntegrityError: If the panel is not a whole number of respondents
    """
    if block_size < 1 or len(panel) % block_size != 0:
        raise KeyIntegrityError(
            f"panel of {len(panel)} rows does not split into respondents "
            f"of {block_size} rows"
        )

    panel = panel.copy()
    panel['ind_id'] = np.arange(len(panel)) // block_size + 1
    panel['pooled_card_id'] = panel.groupby(C.CARD_KEY, sort=True).ngroup() + 1
    panel['ind_card_id'] = panel.groupby(['ind_id', 'pooled_card_id'], sort=True).ngroup() + 1
    return panel


# =============================================================================
# CHOICES AND FEATURES
# =============================================================================

def generate_choices(panel: pd.DataFrame, rng: np.random.Generator,
                     group_col: str = 'ind_card_id') -> pd.DataFrame:
    """
    Choose exactly one alternative per occasion, uniformly at random.

    Every row of an occasion gets an independent uniform key and the row
    with the largest key is chosen. This is a uniformly random permutation
    of {1, 0, ..., 0} over the group.

    Args:
        panel: Panel with occasion identifiers
        rng: Seeded generator; the only source of randomness
        group_col: Occasion identifier column

    Raises:
        KeyIntegrityError: If an occasion has fewer than two alternatives
    """
    sizes = panel.groupby(group_col).size()
    if (sizes < 2).any():
        small = sizes[sizes < 2].index[:5].tolist()
        raise KeyIntegrityError(
            f"occasions {small} have fewer than two alternatives to choose from"
        )

    keys = pd.Series(rng.random(len(panel)), index=panel.index)
    chosen = keys.groupby(panel[group_col]).idxmax()

    panel = panel.copy()
    panel['choice'] = 0
    panel.loc[chosen.values, 'choice'] = 1
    return panel


def interaction_name(a: str, b: str) -> str:
    return f'{a}_x_{b}'


def derive_features(panel: pd.DataFrame,
                    status_quo_alt: int = C.STATUS_QUO_ALT_DEFAULT,
                    interactions: Iterable[Tuple[str, str]] = C.INTERACTIONS_DEFAULT
                    ) -> pd.DataFrame:
    """Add the ASC indicator and attribute interaction products."""
    if status_quo_alt not in set(panel['alt']):
        raise KeyIntegrityError(
            f"status-quo alternative {status_quo_alt} not in panel "
            f"alternatives {sorted(panel['alt'].unique())}"
        )

    panel = panel.copy()
    panel['asc'] = (panel['alt'] != status_quo_alt).astype(int)
    for a, b in interactions:
        panel[interaction_name(a, b)] = panel[a] * panel[b]
    return panel


# =============================================================================
# SIMULATION
# =============================================================================

def simulate_panel(design: pd.DataFrame,
                   n_replications: Optional[int] = C.N_REPLICATIONS_DEFAULT,
                   seed: int = C.SEED_DEFAULT,
                   status_quo_alt: int = C.STATUS_QUO_ALT_DEFAULT,
                   interactions: Sequence[Tuple[str, str]] = C.INTERACTIONS_DEFAULT,
                   n_respondents: Optional[int] = None) -> pd.DataFrame:
    """
    Build the synthetic respondent panel.

    Args:
        design: Validated combined long-format design
        n_replications: Copies of the design
        seed: Seed of the single generator used for all choices
        status_quo_alt: Alternative with ASC = 0
        interactions: Attribute pairs multiplied into interaction columns
        n_respondents: Total respondents; overrides n_replications

    Returns:
        Long panel, one row per (respondent, occasion, alternative)
    """
    if n_respondents is not None:
        n_replications = replications_for(n_respondents, design)

    block_size = rows_per_respondent(design)
    rng = np.random.default_rng(seed)

    panel = replicate_design(design, n_replications)
    panel = assign_identifiers(panel, block_size)
    panel = generate_choices(panel, rng)
    panel = derive_features(panel, status_quo_alt, interactions)

    logger.info(
        f"Simulated {len(panel):,} rows: {panel['ind_id'].nunique():,} respondents, "
        f"{panel['ind_card_id'].nunique():,} choice occasions (seed={seed})"
    )
    return panel
