"""
Pytest Configuration and Shared Fixtures
=========================================

Provides synthetic design tables, a combined design, a simulated panel and
a pipeline configuration pointing at temporary files.
"""

import pytest
import pandas as pd
from pathlib import Path
import sys

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dce_cards.config import DesignSettings, OutputSettings, PipelineConfig, SimulationSettings
from dce_cards.design.cards import concatenate_designs
from dce_cards.design.schema import prepare_design
from dce_cards.simulation.respondents import simulate_panel


COSTS = [5, 10, 20, 40]
DISTANCES = {'miles': [1, 5, 10], 'minutes': [5, 15, 30]}


def make_raw_design(treatment='miles', n_blocks=6, n_cards=8, n_alts=2,
                    distance_column='distance'):
    """
    Per-treatment design as exported by the design tool (no treatment column).

    Alternative 1 cycles through every attribute level; the last alternative
    is a status quo with zero levels. Any alternatives in between copy
    alternative 1 at a higher cost.
    """
    distances = DISTANCES[treatment]
    rows = []
    i = 0
    for block in range(1, n_blocks + 1):
        for card in range(1, n_cards + 1):
            policy = {
                'cost': COSTS[(i * 3) % 4],
                'nature': i % 3,
                'farmland': (i // 3) % 3,
                'meals_nature': (i // 2) % 2,
                'meals_farmland': (i // 5) % 2,
                distance_column: distances[(i // 4) % 3],
                'title': 'Policy option',
            }
            for alt in range(1, n_alts + 1):
                row = {'card_id': i + 1, 'card_dcreate': (i * 7) % 48 + 1,
                       'block': block, 'card': card, 'alt': alt}
                if alt == n_alts:
                    row.update({'cost': 0, 'nature': 0, 'farmland': 0,
                                'meals_nature': 0, 'meals_farmland': 0,
                                distance_column: distances[(i + 1) % 3],
                                'title': 'Current situation'})
                else:
                    row.update(policy)
                    row['cost'] = policy['cost'] * alt
                rows.append(row)
            i += 1
    return pd.DataFrame(rows)


# =============================================================================
# Design Fixtures
# =============================================================================

@pytest.fixture
def raw_design_miles():
    return make_raw_design('miles')


@pytest.fixture
def raw_design_minutes():
    """Minutes design uses the design tool's `dist` spelling."""
    return make_raw_design('minutes', distance_column='dist')


@pytest.fixture
def design_tables(raw_design_miles, raw_design_minutes):
    return [
        prepare_design(raw_design_miles, 'miles', source='miles'),
        prepare_design(raw_design_minutes, 'minutes', source='minutes'),
    ]


@pytest.fixture
def combined_design(design_tables):
    """192 rows: 2 treatments x 6 blocks x 8 cards x 2 alternatives."""
    return concatenate_designs(design_tables, ['miles', 'minutes'])


@pytest.fixture
def three_alt_design():
    return prepare_design(make_raw_design('miles', n_blocks=2, n_cards=4, n_alts=3), 'miles')


# =============================================================================
# Panel Fixtures
# =============================================================================

@pytest.fixture
def simulated_panel(combined_design):
    """Ten replications of the combined design."""
    return simulate_panel(combined_design, n_replications=10, seed=7)


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def design_files(tmp_path, raw_design_miles, raw_design_minutes):
    """Per-treatment design CSVs on disk."""
    design_dir = tmp_path / 'design'
    design_dir.mkdir()
    paths = {'miles': design_dir / 'design_miles.csv',
             'minutes': design_dir / 'design_minutes.csv'}
    raw_design_miles.to_csv(paths['miles'], index=False)
    raw_design_minutes.to_csv(paths['minutes'], index=False)
    return paths


@pytest.fixture
def pipeline_config(tmp_path, design_files):
    """Configuration writing every table under tmp_path/output."""
    return PipelineConfig(
        design=DesignSettings(inputs={k: str(v) for k, v in design_files.items()}),
        output=OutputSettings(dir=str(tmp_path / 'output')),
        simulation=SimulationSettings(n_replications=5, seed=3),
    )


@pytest.fixture(scope="session")
def project_root():
    """Return project root path."""
    return PROJECT_ROOT
