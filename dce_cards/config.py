"""
Pipeline Configuration
======================

Loads and validates the JSON configuration that drives the pipeline.

Configuration Structure:
------------------------
{
    "design": {
        "inputs": {"<treatment>": str},  # Per-treatment design CSV paths
        "image_base_path": str,          # Prefix of local image references
        "image_extension": str,          # e.g. ".png"
        "card_base_url": str,            # Prefix of external card image URLs
        "n_url_cards": int,              # Card URLs per block (default 6)
        "example_card_index": int,       # Index used for the example URL
        "attribute_levels": {            # Optional recognised levels
            "<attribute>": list
        }
    },
    "output": {
        "dir": str,                      # Root of all written tables
        "combined_design": str,
        "wide_design": str,
        "card_database": str,
        "panel": str,
        "results_dir": str
    },
    "simulation": {
        "n_replications": int,           # Copies of the design (or ...)
        "n_respondents": int,            # ... total respondents, optional
        "seed": int,
        "status_quo_alt": int            # Reference alternative (ASC = 0)
    },
    "estimation": {
        "models": list,                  # Ordered specification names
        "n_draws": int,                  # Draws for the mixed logit
        "interactions": [[str, str]]     # Attribute pairs
    }
}

Relative paths are resolved against the current working directory.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from dce_cards import constants as C
from dce_cards.utils.logging_config import get_logger

logger = get_logger(__name__)


# =============================================================================
# SCHEMA VALIDATION
# =============================================================================

@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_config(config: Dict) -> ValidationResult:
    """
    Validate configuration against schema.

    Args:
        config: Configuration dictionary

    Returns:
        ValidationResult with validity status and any errors/warnings
    """
    errors = []
    warnings_list = []

    if 'design' not in config:
        errors.append("Missing required key: design")
        return ValidationResult(False, errors, warnings_list)

    design = config['design']
    inputs = design.get('inputs') or {}
    if not inputs:
        errors.append("design.inputs must map at least one treatment to a design file")
    for treatment in inputs:
        if treatment not in C.SUPPORTED_TREATMENTS:
            errors.append(
                f"design.inputs: unsupported treatment '{treatment}'. "
                f"Must be one of {C.SUPPORTED_TREATMENTS}"
            )

    if 'n_url_cards' in design and not _is_positive_int(design['n_url_cards']):
        errors.append("design.n_url_cards must be a positive integer")

    levels = design.get('attribute_levels', {})
    for attr in levels:
        if attr not in C.BASE_ATTRIBUTES:
            errors.append(f"design.attribute_levels: unknown attribute '{attr}'")

    sim = config.get('simulation', {})
    if 'seed' not in sim:
        warnings_list.append(f"simulation.seed not specified, using default {C.SEED_DEFAULT}")
    for key in ('n_replications', 'n_respondents'):
        if key in sim and not _is_positive_int(sim[key]):
            errors.append(f"simulation.{key} must be a positive integer")
    if 'n_replications' in sim and 'n_respondents' in sim:
        warnings_list.append("simulation.n_respondents overrides simulation.n_replications")

    est = config.get('estimation', {})
    for name in est.get('models', []):
        if name not in C.MODEL_SEQUENCE_DEFAULT:
            errors.append(
                f"estimation.models: unknown model '{name}'. "
                f"Must be one of {C.MODEL_SEQUENCE_DEFAULT}"
            )
    if 'n_draws' in est and not _is_positive_int(est['n_draws']):
        errors.append("estimation.n_draws must be a positive integer")
    for pair in est.get('interactions', []):
        if len(pair) != 2 or any(a not in C.BASE_ATTRIBUTES for a in pair):
            errors.append(f"estimation.interactions: invalid attribute pair {pair}")

    return ValidationResult(len(errors) == 0, errors, warnings_list)


# =============================================================================
# SETTINGS
# =============================================================================

@dataclass
class DesignSettings:
    """Inputs and presentation conventions of the card transformer."""
    inputs: Dict[str, str]
    image_base_path: str = C.IMAGE_BASE_PATH_DEFAULT
    image_extension: str = C.IMAGE_EXTENSION_DEFAULT
    card_base_url: str = C.CARD_BASE_URL_DEFAULT
    n_url_cards: int = C.N_URL_CARDS_DEFAULT
    example_card_index: int = C.EXAMPLE_CARD_INDEX_DEFAULT
    attribute_levels: Dict[str, list] = field(default_factory=dict)


@dataclass
class OutputSettings:
    """Locations of every table the pipeline writes."""
    dir: str = 'output'
    combined_design: str = 'design_combined.csv'
    wide_design: str = 'design_wide.csv'
    card_database: str = 'card_database.csv'
    panel: str = 'simulated_panel.csv'
    results_dir: str = 'results'

    def path(self, name: str) -> Path:
        return Path(self.dir) / getattr(self, name)


@dataclass
class SimulationSettings:
    n_replications: int = C.N_REPLICATIONS_DEFAULT
    n_respondents: Optional[int] = None
    seed: int = C.SEED_DEFAULT
    status_quo_alt: int = C.STATUS_QUO_ALT_DEFAULT


@dataclass
class EstimationSettings:
    models: List[str] = field(default_factory=lambda: list(C.MODEL_SEQUENCE_DEFAULT))
    n_draws: int = C.N_DRAWS_DEFAULT
    interactions: List[Tuple[str, str]] = field(
        default_factory=lambda: list(C.INTERACTIONS_DEFAULT)
    )


@dataclass
class PipelineConfig:
    design: DesignSettings
    output: OutputSettings = field(default_factory=OutputSettings)
    simulation: SimulationSettings = field(default_factory=SimulationSettings)
    estimation: EstimationSettings = field(default_factory=EstimationSettings)

    @classmethod
    def from_dict(cls, config: Dict) -> 'PipelineConfig':
        """Build settings from a validated configuration dictionary."""
        est = dict(config.get('estimation', {}))
        if 'interactions' in est:
            est['interactions'] = [tuple(pair) for pair in est['interactions']]

        return cls(
            design=DesignSettings(**config['design']),
            output=OutputSettings(**config.get('output', {})),
            simulation=SimulationSettings(**config.get('simulation', {})),
            estimation=EstimationSettings(**est),
        )


def load_config(path: str) -> PipelineConfig:
    """
    Load and validate a pipeline configuration file.

    Args:
        path: Path to JSON configuration file

    Returns:
        PipelineConfig

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    result = validate_config(config)
    if not result.is_valid:
        raise ValueError(
            f"Invalid configuration {config_path}:\n  - " + "\n  - ".join(result.errors)
        )
    for warning in result.warnings:
        logger.warning(f"{config_path}: {warning}")

    try:
        return PipelineConfig.from_dict(config)
    except TypeError as e:
        raise ValueError(f"Invalid configuration {config_path}: {e}") from e
