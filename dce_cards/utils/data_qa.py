"""
Data Quality Checks before Estimation
=====================================

Validates the simulated panel before model fitting to catch problems that
make a specification non-identifiable:
1. Constant attributes (not identifiable)
2. Extreme choice share imbalance
3. Missing values
"""

from typing import Any, Dict, List, Sequence

import pandas as pd

from dce_cards import constants as C
from dce_cards.utils.logging_config import get_logger

logger = get_logger(__name__)


def check_panel(panel: pd.DataFrame,
                attributes: Sequence[str] = C.BASE_ATTRIBUTES,
                choice_col: str = 'choice',
                max_share_threshold: float = 0.8,
                min_share_threshold: float = 0.05,
                fail_on_error: bool = False) -> Dict[str, Any]:
    """
    Validate a long simulated panel and return issues found.

    Args:
        panel: Long panel (one row per alternative)
        attributes: Attributes entering the utility functions
        choice_col: Binary choice indicator
        max_share_threshold: Warn if any alternative has share > this
        min_share_threshold: Warn if any alternative has share < this
        fail_on_error: If True, raise exception on ERROR-level issues

    Returns:
        Dict with 'valid' (bool), 'errors' and 'warnings' (lists of strings)
    """
    errors: List[str] = []
    warnings_list: List[str] = []

    n_obs = int(panel['ind_card_id'].nunique()) if 'ind_card_id' in panel else len(panel)
    n_respondents = int(panel['ind_id'].nunique()) if 'ind_id' in panel else None

    # 1. Choice share balance
    chosen = panel.loc[panel[choice_col] == 1, 'alt']
    shares = chosen.value_counts(normalize=True).sort_index()
    for alt, share in shares.items():
        if share > max_share_threshold:
            warnings_list.append(
                f"WARNING: Alternative {alt} has {share:.1%} share "
                f"(>{max_share_threshold:.0%}) - quasi-separation risk"
            )
        elif share < min_share_threshold:
            warnings_list.append(
                f"WARNING: Alternative {alt} has {share:.1%} share "
                f"(<{min_share_threshold:.0%}) - poor identification"
            )

    # 2. Attribute variation
    for col in attributes:
        if col not in panel.columns:
            errors.append(f"ERROR: {col} missing from panel")
            continue
        if panel[col].nunique() == 1:
            errors.append(
                f"ERROR: {col} is constant (value={panel[col].iloc[0]}) - NOT IDENTIFIABLE"
            )

    # 3. Missing values
    present = [c for c in list(attributes) + [choice_col] if c in panel.columns]
    missing = panel[present].isnull().sum()
    for col, count in missing[missing > 0].items():
        warnings_list.append(f"WARNING: {col} has {count} missing values")

    valid = not errors

    logger.info(
        f"Panel check: {n_obs:,} occasions, {n_respondents} respondents, "
        f"shares {', '.join(f'{a}={s:.1%}' for a, s in shares.items())}"
    )
    for msg in errors:
        logger.error(msg)
    for msg in warnings_list:
        logger.warning(msg)

    if fail_on_error and not valid:
        raise ValueError(f"Panel validation failed with {len(errors)} error(s)")

    return {
        "valid": valid,
        "errors": errors,
        "warnings": warnings_list,
        "n_observations": n_obs,
        "n_respondents": n_respondents,
        "shares": shares.to_dict(),
    }
