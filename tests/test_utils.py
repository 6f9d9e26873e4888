"""
Tests for Shared Utilities
==========================

Tests table writing, validation helpers and the panel quality checks.
"""

import pytest
import pandas as pd
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dce_cards.utils.data_qa import check_panel
from dce_cards.utils.io import write_table, write_tables
from dce_cards.utils.validation import KeyIntegrityError, validate_group_sizes


class TestWriteTable:
    """Tests for write_table."""

    @pytest.mark.unit
    def test_creates_parent_and_writes(self, tmp_path):
        df = pd.DataFrame({'a': [1, 2], 'b': ['x', 'y']})
        path = write_table(df, tmp_path / 'nested' / 'table.csv')
        assert path.exists()
        pd.testing.assert_frame_equal(pd.read_csv(path), df)
        assert not list(path.parent.glob('*.tmp'))

    @pytest.mark.unit
    def test_replaces_existing(self, tmp_path):
        path = tmp_path / 'table.csv'
        write_table(pd.DataFrame({'a': [1]}), path)
        write_table(pd.DataFrame({'a': [2, 3]}), path)
        assert pd.read_csv(path)['a'].tolist() == [2, 3]


class FailingTable(pd.DataFrame):
    """Frame whose CSV serialisation fails."""

    def to_csv(self, *args, **kwargs):
        raise ValueError("disk full")


class TestWriteTables:
    """Tests for write_tables."""

    @pytest.mark.unit
    def test_writes_all(self, tmp_path):
        paths = write_tables([(pd.DataFrame({'a': [1]}), tmp_path / 'one.csv'),
                              (pd.DataFrame({'b': [2]}), tmp_path / 'two.csv')])
        assert [p.name for p in paths] == ['one.csv', 'two.csv']
        assert pd.read_csv(paths[1])['b'].tolist() == [2]

    @pytest.mark.unit
    def test_failure_keeps_previous_tables(self, tmp_path):
        first, second = tmp_path / 'one.csv', tmp_path / 'two.csv'
        write_tables([(pd.DataFrame({'a': [1]}), first),
                      (pd.DataFrame({'b': [1]}), second)])

        with pytest.raises(ValueError, match='disk full'):
            write_tables([(pd.DataFrame({'a': [2]}), first),
                          (FailingTable({'b': [2]}), second)])

        assert pd.read_csv(first)['a'].tolist() == [1]
        assert pd.read_csv(second)['b'].tolist() == [1]
        assert not list(tmp_path.glob('*.tmp'))


class TestGroupSizes:
    """Tests for validate_group_sizes."""

    @pytest.mark.unit
    def test_common_size(self):
        df = pd.DataFrame({'g': [1, 1, 2, 2]})
        assert validate_group_sizes(df, ['g']) == 2

    @pytest.mark.unit
    def test_expected_size(self):
        df = pd.DataFrame({'g': [1, 1, 2, 2]})
        with pytest.raises(KeyIntegrityError, match='expected 3'):
            validate_group_sizes(df, ['g'], expected=3)

    @pytest.mark.unit
    def test_empty(self):
        with pytest.raises(KeyIntegrityError):
            validate_group_sizes(pd.DataFrame({'g': []}), ['g'])


class TestCheckPanel:
    """Tests for check_panel."""

    @pytest.mark.unit
    def test_valid_panel(self, simulated_panel):
        result = check_panel(simulated_panel)
        assert result['valid']
        assert result['n_respondents'] == 120
        assert sum(result['shares'].values()) == pytest.approx(1.0)

    @pytest.mark.unit
    def test_constant_attribute(self, simulated_panel):
        panel = simulated_panel.assign(farmland=1)
        result = check_panel(panel)
        assert not result['valid']
        assert any('farmland' in e for e in result['errors'])

    @pytest.mark.unit
    def test_fail_on_error(self, simulated_panel):
        with pytest.raises(ValueError):
            check_panel(simulated_panel.assign(farmland=1), fail_on_error=True)

    @pytest.mark.unit
    def test_share_imbalance(self, simulated_panel):
        panel = simulated_panel.copy()
        panel['choice'] = (panel['alt'] == 1).astype(int)
        result = check_panel(panel)
        assert any('quasi-separation' in w for w in result['warnings'])
