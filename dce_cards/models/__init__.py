"""
Models module.

Specifications progress from simple to complex and are fitted in order:
    - null: ASC only
    - mnl: linear multinomial logit
    - mnl_interactions: MNL with distance interactions
    - mxl: mixed logit, normal random coefficients except cost
    - nonparametric: one effect per attribute level

Biogeme is imported by the specifications and estimation modules only, so
the estimation frame can be built without it.

Usage:
    from dce_cards.models.specifications import ModelRegistry
    from dce_cards.models.estimation import run_model_sequence
"""
from .estimation_data import to_estimation_frame
