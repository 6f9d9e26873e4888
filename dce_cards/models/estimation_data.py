"""
Estimation Data Preparation
===========================

Packages the long simulated panel into the wide layout Biogeme estimates
from: one row per choice occasion with alternative-suffixed columns.

Output columns:
    ID            respondent (panel key of the mixed logit)
    OCC           choice occasion (ind_card_id)
    CHOICE        index of the chosen alternative
    asc<alt>      ASC indicator per alternative
    <attr><alt>   attribute levels per alternative
    <a>_x_<b><alt>  interaction terms per alternative
    <attr>_<level>_d<alt>  level dummies for the nonparametric model
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from dce_cards import constants as C
from dce_cards.simulation.respondents import interaction_name
from dce_cards.utils.validation import KeyIntegrityError, validate_required_columns


def level_token(value) -> str:
    """Column-safe spelling of an attribute level (2.5 -> '2p5', -1 -> 'm1')."""
    value = float(value)
    if value.is_integer():
        text = str(int(value))
    else:
        text = repr(value).replace('.', 'p')
    return text.replace('-', 'm')


def level_dummy_name(attr: str, level) -> str:
    return f'{attr}_{level_token(level)}_d'


def attribute_levels(panel: pd.DataFrame,
                     attributes: Sequence[str] = C.BASE_ATTRIBUTES) -> Dict[str, List[float]]:
    """Sorted distinct levels of each attribute; the first is the reference."""
    return {attr: sorted(panel[attr].unique().tolist()) for attr in attributes}


def add_level_dummies(panel: pd.DataFrame,
                      levels: Dict[str, List[float]]) -> pd.DataFrame:
    """Dummy-code every non-reference level of every attribute."""
    dummies = {}
    for attr, values in levels.items():
        for level in values[1:]:
            dummies[level_dummy_name(attr, level)] = (panel[attr] == level).astype(int)
    return pd.concat([panel, pd.DataFrame(dummies, index=panel.index)], axis=1)


def to_estimation_frame(panel: pd.DataFrame,
                        attributes: Sequence[str] = C.BASE_ATTRIBUTES,
                        interactions: Sequence[Tuple[str, str]] = C.INTERACTIONS_DEFAULT,
                        levels: Optional[Dict[str, List[float]]] = None) -> pd.DataFrame:
    """
    Reshape the long panel into one numeric row per choice occasion.

    Args:
        panel: Simulated long panel (see simulate_panel)
        attributes: Base attributes
        interactions: Attribute pairs whose products are in the panel
        levels: Levels to dummy-code (default: every level observed)

    Returns:
        Wide numeric DataFrame ready for biogeme.database.Database

    Raises:
        KeyIntegrityError: If an occasion does not have exactly one choice
    """
    inter_cols = [interaction_name(a, b) for a, b in interactions]
    validate_required_columns(
        panel,
        ['ind_id', 'ind_card_id', 'alt', 'choice', 'asc'] + list(attributes) + inter_cols,
        'simulated panel',
    )

    n_chosen = panel.groupby('ind_card_id')['choice'].sum()
    if (n_chosen != 1).any():
        bad = n_chosen[n_chosen != 1].index[:5].tolist()
        raise KeyIntegrityError(f"simulated panel: occasions {bad} do not have exactly one choice")

    if levels is None:
        levels = attribute_levels(panel, attributes)
    panel = add_level_dummies(panel, levels)
    dummy_cols = [level_dummy_name(a, lvl) for a, values in levels.items() for lvl in values[1:]]

    value_cols = ['asc'] + list(attributes) + inter_cols + dummy_cols
    alts = sorted(panel['alt'].unique())

    wide = panel.pivot(index='ind_card_id', columns='alt', values=value_cols)
    wide.columns = [f'{col}{alt}' for col, alt in wide.columns]
    wide = wide[[f'{col}{alt}' for alt in alts for col in value_cols]].astype(float)

    chosen = panel.loc[panel['choice'] == 1].set_index('ind_card_id')['alt']
    ids = panel.groupby('ind_card_id')['ind_id'].first()

    frame = pd.DataFrame({
        'ID': ids.astype(int),
        'OCC': ids.index.astype(int),
        'CHOICE': chosen.reindex(ids.index).astype(int),
    })
    frame = frame.join(wide).reset_index(drop=True)

    # Biogeme databases accept numeric columns only
    return frame.select_dtypes(include=[np.number]).copy()
