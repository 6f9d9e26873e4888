"""
Choice-Card Pipeline
====================

Runs the stages end to end:

1. cards:     per-treatment designs -> combined design, wide design, card database
2. simulate:  combined design -> synthetic respondent panel
3. estimate:  panel -> model fits, coefficient tables, WTP

Usage:
    dce-cards --config config/pipeline_config.json
    dce-cards --config config/pipeline_config.json --stage simulate
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd

from dce_cards.config import PipelineConfig, load_config
from dce_cards.design.cards import build_card_tables, write_card_tables
from dce_cards.design.schema import load_design
from dce_cards.models.estimation import (
    STATUS_OK,
    FitResult,
    make_terms,
    run_model_sequence,
    write_fit_reports,
)
from dce_cards.models.estimation_data import to_estimation_frame
from dce_cards.models.specifications import ModelRegistry
from dce_cards.policy_analysis.wtp import compute_wtp
from dce_cards.simulation.respondents import simulate_panel
from dce_cards.utils.data_qa import check_panel
from dce_cards.utils.io import write_table
from dce_cards.utils.logging_config import configure_warnings, get_logger, setup_logging

logger = get_logger(__name__)

STAGES = ['cards', 'simulate', 'estimate']

# Specifications with a fixed cost coefficient
WTP_MODELS = ['mnl', 'mnl_interactions', 'mxl']


# =============================================================================
# STAGES
# =============================================================================

def run_transformer(config: PipelineConfig) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Build and write the card tables.

    Every input is loaded and every table built before the first write, so a
    validation error leaves no output behind.
    """
    settings = config.design
    sources = []
    tables = []
    for treatment, path in settings.inputs.items():
        tables.append(load_design(path, treatment, settings.attribute_levels))
        sources.append(str(path))

    combined, wide, card_database = build_card_tables(tables, settings, sources)
    write_card_tables(combined, wide, card_database, config.output)
    return combined, wide, card_database


def run_simulation(config: PipelineConfig,
                   design: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """Simulate the respondent panel from the combined design and write it."""
    if design is None:
        design = load_design(config.output.path('combined_design'))

    sim = config.simulation
    panel = simulate_panel(
        design,
        n_replications=sim.n_replications,
        seed=sim.seed,
        status_quo_alt=sim.status_quo_alt,
        interactions=config.estimation.interactions,
        n_respondents=sim.n_respondents,
    )
    write_table(panel, config.output.path('panel'))
    return panel


def run_estimation(config: PipelineConfig,
                   panel: Optional[pd.DataFrame] = None,
                   verbose: bool = True) -> List[FitResult]:
    """Fit the configured specifications and write their reports."""
    if panel is None:
        panel_path = config.output.path('panel')
        if not panel_path.exists():
            raise FileNotFoundError(f"Simulated panel not found: {panel_path}")
        panel = pd.read_csv(panel_path)

    est = config.estimation
    check_panel(panel)

    frame = to_estimation_frame(panel, interactions=est.interactions)
    terms = make_terms(frame, panel, interactions=est.interactions)
    specs = ModelRegistry.sequence(est.models)

    results_dir = Path(config.output.dir) / config.output.results_dir
    results = run_model_sequence(frame, specs, terms, n_draws=est.n_draws,
                                 output_dir=results_dir, verbose=verbose)
    write_fit_reports(results, results_dir)

    wtp_rows = []
    for r in results:
        if r.name in WTP_MODELS and r.status == STATUS_OK:
            for w in compute_wtp(r):
                logger.info(f"{r.label}: {w}")
                wtp_rows.append({'Model': r.label, **vars(w)})
    if wtp_rows:
        write_table(pd.DataFrame(wtp_rows), results_dir / 'wtp_estimates.csv')

    return results


# =============================================================================
# MAIN
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Build choice cards and check design identifiability',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example usage:
  dce-cards --config config/pipeline_config.json
  dce-cards --config config/pipeline_config.json --stage cards
        """
    )
    parser.add_argument('--config', default='config/pipeline_config.json',
                        help='Path to JSON configuration file')
    parser.add_argument('--stage', choices=STAGES + ['all'], default='all',
                        help='Stage to run (default: all)')
    parser.add_argument('--log-file', help='Also write the log to this file')
    parser.add_argument('--log-format', choices=['standard', 'detailed', 'json'],
                        default='standard', help='Console log format (default: standard)')
    parser.add_argument('--verbose', action='store_true',
                        help='Debug logging and all warnings')

    args = parser.parse_args(argv)

    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO,
                  log_file=args.log_file, format_style=args.log_format)
    configure_warnings(debug_mode=args.verbose)

    try:
        config = load_config(args.config)

        design = panel = None
        if args.stage in ('cards', 'all'):
            design, _, _ = run_transformer(config)
        if args.stage in ('simulate', 'all'):
            panel = run_simulation(config, design)
        if args.stage in ('estimate', 'all'):
            run_estimation(config, panel)
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"Pipeline stopped: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
