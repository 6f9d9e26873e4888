"""
Willingness-to-Pay Calculations
===============================

WTP is the marginal rate of substitution between an attribute and cost:

    WTP_k = -B_k / B_COST

For the mixed logit the mean coefficient (B_k_MU) is used; cost is fixed
in that model so the ratio has a finite mean.

Standard errors use the delta method:
    Var(WTP) = g' * Cov(B_k, B_COST) * g
    g = [-1 / B_COST, B_k / B_COST^2]
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from scipy import stats

from dce_cards import constants as C
from dce_cards.models.estimation import FitResult
from dce_cards.models.specifications import beta_name
from dce_cards.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class WTPResult:
    """WTP point estimate with delta-method uncertainty."""
    attribute: str
    parameter: str
    cost_parameter: str
    wtp_point: float
    wtp_se: float
    ci_lower: float
    ci_upper: float
    t_stat: float = None
    p_value: float = None

    def __post_init__(self):
        if self.t_stat is None and self.wtp_se and self.wtp_se > 0:
            self.t_stat = self.wtp_point / self.wtp_se
        if self.p_value is None and self.t_stat is not None:
            self.p_value = 2 * (1 - stats.norm.cdf(abs(self.t_stat)))

    def __str__(self) -> str:
        return (
            f"WTP({self.attribute}) = {self.wtp_point:,.2f} "
            f"(SE: {self.wtp_se:,.2f}, "
            f"95% CI: [{self.ci_lower:,.2f}, {self.ci_upper:,.2f}])"
        )


def attribute_parameter(fit: FitResult, attribute: str) -> str:
    """Coefficient carrying the mean taste for `attribute` in `fit`."""
    mean_param = beta_name(attribute, 'MU')
    if mean_param in fit.betas:
        return mean_param
    return beta_name(attribute)


def parameter_covariance(fit: FitResult, params: List[str]) -> np.ndarray:
    """
    Covariance submatrix for `params`.

    Falls back to a diagonal matrix of squared standard errors when the
    robust covariance is unavailable; that ignores parameter correlation.
    """
    cov = fit.covariance
    if cov is not None and all(p in cov.index and p in cov.columns for p in params):
        return cov.loc[params, params].to_numpy(dtype=float)

    logger.warning(
        f"{fit.label}: no covariance for {params}, assuming uncorrelated estimates"
    )
    return np.diag([fit.std_errs.get(p, np.nan) ** 2 for p in params])


def compute_wtp(fit: FitResult,
                attributes: Optional[Sequence[str]] = None,
                cost_attribute: str = C.COST_ATTRIBUTE,
                z: float = C.Z_95) -> List[WTPResult]:
    """
    WTP for every non-cost attribute of a fitted specification.

    Args:
        fit: Estimated specification with a fixed cost coefficient
        attributes: Attributes to value (default: every base attribute but cost)
        cost_attribute: Monetary attribute
        z: Critical value of the confidence interval

    Returns:
        List of WTPResult, one per attribute present in the fit

    Raises:
        ValueError: If the fit has no usable cost coefficient
    """
    cost_param = beta_name(cost_attribute)
    if cost_param not in fit.betas:
        raise ValueError(f"{fit.label}: no fixed cost coefficient {cost_param}")

    beta_cost = fit.betas[cost_param]
    if beta_cost == 0:
        raise ValueError(f"{fit.label}: cost coefficient {cost_param} is zero")

    if attributes is None:
        attributes = [a for a in C.BASE_ATTRIBUTES if a != cost_attribute]

    results = []
    for attr in attributes:
        param = attribute_parameter(fit, attr)
        if param not in fit.betas:
            continue

        beta = fit.betas[param]
        wtp = -beta / beta_cost
        grad = np.array([-1.0 / beta_cost, beta / beta_cost ** 2])
        cov = parameter_covariance(fit, [param, cost_param])
        se = float(np.sqrt(max(grad @ cov @ grad, 0)))

        results.append(WTPResult(
            attribute=attr,
            parameter=param,
            cost_parameter=cost_param,
            wtp_point=wtp,
            wtp_se=se,
            ci_lower=wtp - z * se,
            ci_upper=wtp + z * se,
        ))
    return results
