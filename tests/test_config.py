"""
Tests for Pipeline Configuration
================================

Tests schema validation and loading of the JSON configuration.
"""

import pytest
import json
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dce_cards import constants as C
from dce_cards.config import PipelineConfig, load_config, validate_config


def minimal_config():
    return {'design': {'inputs': {'miles': 'design_miles.csv'}}}


def write_config(tmp_path, config):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps(config))
    return path


class TestValidateConfig:
    """Tests for validate_config."""

    @pytest.mark.unit
    def test_minimal_is_valid(self):
        result = validate_config(minimal_config())
        assert result.is_valid
        assert any('seed' in w for w in result.warnings)

    @pytest.mark.unit
    def test_missing_design(self):
        result = validate_config({})
        assert not result.is_valid
        assert 'design' in result.errors[0]

    @pytest.mark.unit
    def test_no_inputs(self):
        result = validate_config({'design': {'inputs': {}}})
        assert not result.is_valid

    @pytest.mark.unit
    def test_unknown_treatment(self):
        config = {'design': {'inputs': {'kilometres': 'x.csv'}}}
        result = validate_config(config)
        assert any('kilometres' in e for e in result.errors)

    @pytest.mark.unit
    def test_bad_numbers(self):
        config = minimal_config()
        config['design']['n_url_cards'] = 0
        config['simulation'] = {'n_replications': -1, 'seed': 1}
        config['estimation'] = {'n_draws': 'many'}
        result = validate_config(config)
        assert len(result.errors) == 3

    @pytest.mark.unit
    def test_boolean_is_not_a_count(self):
        config = minimal_config()
        config['simulation'] = {'n_replications': True, 'seed': 1}
        assert not validate_config(config).is_valid

    @pytest.mark.unit
    def test_unknown_model(self):
        config = minimal_config()
        config['estimation'] = {'models': ['mnl', 'probit']}
        result = validate_config(config)
        assert any('probit' in e for e in result.errors)

    @pytest.mark.unit
    def test_bad_interaction(self):
        config = minimal_config()
        config['estimation'] = {'interactions': [['distance', 'beaches']]}
        assert not validate_config(config).is_valid

    @pytest.mark.unit
    def test_respondents_override_warning(self):
        config = minimal_config()
        config['simulation'] = {'n_replications': 10, 'n_respondents': 120, 'seed': 1}
        result = validate_config(config)
        assert result.is_valid
        assert any('overrides' in w for w in result.warnings)


class TestLoadConfig:
    """Tests for load_config."""

    @pytest.mark.unit
    def test_defaults(self, tmp_path):
        config = load_config(write_config(tmp_path, minimal_config()))
        assert isinstance(config, PipelineConfig)
        assert config.design.n_url_cards == C.N_URL_CARDS_DEFAULT
        assert config.simulation.seed == C.SEED_DEFAULT
        assert config.estimation.models == C.MODEL_SEQUENCE_DEFAULT
        assert config.output.path('panel') == Path('output') / 'simulated_panel.csv'

    @pytest.mark.unit
    def test_interactions_become_tuples(self, tmp_path):
        raw = minimal_config()
        raw['estimation'] = {'interactions': [['distance', 'nature']]}
        config = load_config(write_config(tmp_path, raw))
        assert config.estimation.interactions == [('distance', 'nature')]

    @pytest.mark.unit
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / 'missing.json')

    @pytest.mark.unit
    def test_invalid_raises(self, tmp_path):
        with pytest.raises(ValueError, match='kilometres'):
            load_config(write_config(tmp_path, {'design': {'inputs': {'kilometres': 'x'}}}))

    @pytest.mark.unit
    def test_unknown_key_raises(self, tmp_path):
        raw = minimal_config()
        raw['simulation'] = {'seed': 1, 'n_reps': 3}
        with pytest.raises(ValueError, match='n_reps'):
            load_config(write_config(tmp_path, raw))

    @pytest.mark.unit
    def test_shipped_config(self, project_root):
        config = load_config(project_root / 'config' / 'pipeline_config.json')
        assert set(config.design.inputs) == {'miles', 'minutes'}
        assert config.simulation.n_replications == 100
