"""
Choice-card design pipeline for a discrete-choice survey experiment.

Modules:
    design:           per-treatment designs -> wide choice cards
    simulation:       synthetic respondents with random choices
    models:           Biogeme specifications and fitting orchestration
    policy_analysis:  willingness to pay
    utils:            logging, validation, I/O and data checks
"""

__version__ = '0.1.0'
