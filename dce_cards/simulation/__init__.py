"""Respondent-choice simulator."""
from .respondents import (
    replicate_design,
    assign_identifiers,
    generate_choices,
    derive_features,
    simulate_panel,
)
