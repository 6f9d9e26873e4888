"""
Centralized Constants for the Choice-Card Pipeline
==================================================

Column names, recognised categories and default settings shared by the
design transformer, the respondent simulator and the model fits.

Usage:
    from dce_cards.constants import BASE_ATTRIBUTES, SEED_DEFAULT
    # or
    import dce_cards.constants as C
"""

# =============================================================================
# DESIGN SCHEMA
# =============================================================================

# Key of one long-format design row
KEY_COLUMNS = ['treatment', 'block', 'card', 'alt']

# Key of one choice card (wide row)
CARD_KEY = ['treatment', 'block', 'card']

# Identifiers assigned by the design tool, carried through when present
DESIGN_ID_COLUMNS = ['card_id', 'card_dcreate']

# Numeric attributes entering the utility functions
BASE_ATTRIBUTES = [
    'cost',
    'nature',
    'farmland',
    'meals_nature',
    'meals_farmland',
    'distance',
]

# Passthrough attributes shown on the card but never modelled
TEXT_ATTRIBUTES = ['title']

# Alternate spellings produced by the design tool
COLUMN_ALIASES = {
    'dist': 'distance',
    'alt_id': 'alt',
}

# Attribute held fixed in the mixed logit (marginal utility of money)
COST_ATTRIBUTE = 'cost'


# =============================================================================
# TREATMENTS
# =============================================================================

# Distance is framed in a different unit per treatment; each unit has its
# own image namespace
DISTANCE_IMAGE_NAMESPACES = {
    'miles': 'distance_miles',
    'minutes': 'distance_minutes',
}

SUPPORTED_TREATMENTS = list(DISTANCE_IMAGE_NAMESPACES)


# =============================================================================
# CARD PRESENTATION
# =============================================================================

# Attributes whose alternative-1 level is shown as an image
IMAGE_ATTRIBUTES = ['cost', 'nature', 'farmland', 'meals_nature', 'meals_farmland']

IMAGE_BASE_PATH_DEFAULT = 'images/'
IMAGE_EXTENSION_DEFAULT = '.png'

CARD_BASE_URL_DEFAULT = 'https://survey-assets.example.org/choice-cards/'

# Every block is rendered as cards 1..6 plus one worked example
N_URL_CARDS_DEFAULT = 6
EXAMPLE_CARD_INDEX_DEFAULT = 0


# =============================================================================
# SIMULATION DEFAULTS
# =============================================================================

SEED_DEFAULT = 42
N_REPLICATIONS_DEFAULT = 100

# Reference alternative (ASC = 0); alternative 1 is the policy option
STATUS_QUO_ALT_DEFAULT = 2

# Distance interacts with every other non-cost attribute
INTERACTIONS_DEFAULT = [
    ('distance', 'nature'),
    ('distance', 'farmland'),
    ('distance', 'meals_nature'),
    ('distance', 'meals_farmland'),
]


# =============================================================================
# ESTIMATION DEFAULTS
# =============================================================================

MODEL_SEQUENCE_DEFAULT = ['null', 'mnl', 'mnl_interactions', 'mxl', 'nonparametric']

N_DRAWS_DEFAULT = 500          # Standard for estimation
N_DRAWS_QUICK = 100            # For quick tests

# 95% confidence intervals
Z_95 = 1.96
