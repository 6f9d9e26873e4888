"""
Choice Model Specifications
===========================

Utility specifications of increasing complexity, fitted in order to check
that the design identifies the choice model:

    null              V_j = ASC * asc_j
    mnl               V_j = ASC * asc_j + sum_k B_k * x_jk
    mnl_interactions  mnl + sum_(a,b) B_a_X_b * x_ja * x_jb
    mxl               mnl with B_k ~ N(B_k_MU, B_k_SIGMA^2) for every k
                      except cost; panel likelihood over respondents
    nonparametric     V_j = ASC * asc_j + B_COST * cost_j
                            + sum_(k != cost) sum_(l != ref) B_k_l * 1[x_jk = l]

The cost coefficient stays fixed in the mixed logit so that willingness to
pay is a ratio to a fixed marginal utility of money.

Usage:
    from dce_cards.models.specifications import ModelRegistry

    ModelRegistry.list_models()
    logprob = ModelRegistry.get('mnl').builder(terms)
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

import pandas as pd

from biogeme import models
from biogeme.expressions import Beta, Draws, MonteCarlo, PanelLikelihoodTrajectory, Variable, log

from dce_cards import constants as C
from dce_cards.models.estimation_data import level_dummy_name, level_token
from dce_cards.simulation.respondents import interaction_name


@dataclass
class UtilityTerms:
    """Column vocabulary shared by every specification."""
    alternatives: List[int]
    attributes: List[str] = field(default_factory=lambda: list(C.BASE_ATTRIBUTES))
    interactions: List[Tuple[str, str]] = field(
        default_factory=lambda: list(C.INTERACTIONS_DEFAULT)
    )
    levels: Dict[str, list] = field(default_factory=dict)

    @property
    def availability(self) -> Dict[int, int]:
        return {alt: 1 for alt in self.alternatives}


@dataclass(frozen=True)
class ModelSpecification:
    """A registered utility specification."""
    name: str
    label: str
    builder: Callable[[UtilityTerms], object]
    description: str = ''
    panel: bool = False
    uses_draws: bool = False


class ModelRegistry:
    """Registry of available specifications, in fitting order."""

    _registry: Dict[str, ModelSpecification] = {}

    @classmethod
    def register(cls, name: str, label: str, description: str = "",
                 panel: bool = False, uses_draws: bool = False):
        """Decorator to register a specification builder."""
        def decorator(func: Callable):
            cls._registry[name] = ModelSpecification(
                name=name,
                label=label,
                builder=func,
                description=description or (func.__doc__ or "").strip(),
                panel=panel,
                uses_draws=uses_draws,
            )
            return func
        return decorator

    @classmethod
    def get(cls, name: str) -> ModelSpecification:
        if name not in cls._registry:
            available = ', '.join(cls._registry)
            raise ValueError(f"Model '{name}' not found. Available: {available}")
        return cls._registry[name]

    @classmethod
    def sequence(cls, names: Sequence[str] = None) -> List[ModelSpecification]:
        """Specifications for `names` (default: all, in registration order)."""
        if names is None:
            names = list(cls._registry)
        return [cls.get(name) for name in names]

    @classmethod
    def list_models(cls) -> pd.DataFrame:
        """List all available models with descriptions."""
        return pd.DataFrame([
            {'Model': spec.name, 'Label': spec.label, 'Description': spec.description}
            for spec in cls._registry.values()
        ])


# =============================================================================
# HELPERS
# =============================================================================

def beta_name(*parts: str) -> str:
    return 'B_' + '_'.join(p.upper() for p in parts)


def _asc_terms(terms: UtilityTerms) -> Dict[int, object]:
    ASC = Beta('ASC', 0, None, None, 0)
    return {alt: ASC * Variable(f'asc{alt}') for alt in terms.alternatives}


def _add_linear(V: Dict[int, object], coefs: Dict[str, object]) -> Dict[int, object]:
    """Add coef * column<alt> to every alternative's utility."""
    out = {}
    for alt, utility in V.items():
        for column, coef in coefs.items():
            utility = utility + coef * Variable(f'{column}{alt}')
        out[alt] = utility
    return out


def _fixed_attribute_coefs(terms: UtilityTerms) -> Dict[str, object]:
    return {attr: Beta(beta_name(attr), 0, None, None, 0) for attr in terms.attributes}


def _loglogit(V: Dict[int, object], terms: UtilityTerms):
    return models.loglogit(V, terms.availability, Variable('CHOICE'))


# =============================================================================
# SPECIFICATIONS
# =============================================================================

@ModelRegistry.register('null', 'Null', "Alternative-specific constant only")
def create_null(terms: UtilityTerms):
    return _loglogit(_asc_terms(terms), terms)


@ModelRegistry.register('mnl', 'MNL', "Linear MNL over all base attributes")
def create_mnl(terms: UtilityTerms):
    V = _add_linear(_asc_terms(terms), _fixed_attribute_coefs(terms))
    return _loglogit(V, terms)


@ModelRegistry.register('mnl_interactions', 'MNL-Interactions',
                        "Linear MNL plus pairwise attribute interactions")
def create_mnl_interactions(terms: UtilityTerms):
    coefs = _fixed_attribute_coefs(terms)
    for a, b in terms.interactions:
        coefs[interaction_name(a, b)] = Beta(beta_name(a, 'x', b), 0, None, None, 0)
    V = _add_linear(_asc_terms(terms), coefs)
    return _loglogit(V, terms)


@ModelRegistry.register('mxl', 'MXL', "Normal random coefficients on all attributes except cost",
                        panel=True, uses_draws=True)
def create_mxl(terms: UtilityTerms):
    """
    Mixed logit with independent normal random coefficients.

    Draws are shared across a respondent's occasions through the panel
    likelihood, so the database must be declared with panel('ID').
    """
    coefs = {}
    for attr in terms.attributes:
        if attr == C.COST_ATTRIBUTE:
            coefs[attr] = Beta(beta_name(attr), 0, None, None, 0)
            continue
        mu = Beta(beta_name(attr, 'MU'), 0, None, None, 0)
        sigma = Beta(beta_name(attr, 'SIGMA'), 0.1, 0.001, 5, 0)
        coefs[attr] = mu + sigma * Draws(beta_name(attr, 'RND'), 'NORMAL')

    V = _add_linear(_asc_terms(terms), coefs)
    prob = models.logit(V, terms.availability, Variable('CHOICE'))
    return log(MonteCarlo(PanelLikelihoodTrajectory(prob)))


@ModelRegistry.register('nonparametric', 'Nonparametric',
                        "Separate effect per attribute level (lowest level is reference), linear cost")
def create_nonparametric(terms: UtilityTerms):
    """
    Level-dummy MNL with a linear cost coefficient.

    Cost enters linearly: with a zero-cost status quo its level dummies
    would sum to the ASC.
    """
    if not terms.levels:
        raise ValueError("nonparametric model needs attribute levels")

    coefs = {}
    if C.COST_ATTRIBUTE in terms.attributes:
        coefs[C.COST_ATTRIBUTE] = Beta(beta_name(C.COST_ATTRIBUTE), 0, None, None, 0)
    for attr, values in terms.levels.items():
        if attr == C.COST_ATTRIBUTE:
            continue
        for level in values[1:]:
            coefs[level_dummy_name(attr, level)] = Beta(
                beta_name(attr, level_token(level)), 0, None, None, 0
            )
    V = _add_linear(_asc_terms(terms), coefs)
    return _loglogit(V, terms)
