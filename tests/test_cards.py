"""
Tests for the Design-to-Cards Transformer
=========================================

Tests reshape correctness, key uniqueness, presentation fields and the
column layout of the card database.
"""

import pytest
import pandas as pd
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dce_cards.config import DesignSettings, OutputSettings
from dce_cards.design.cards import (
    build_card_tables,
    card_url,
    concatenate_designs,
    derive_presentation_fields,
    format_level,
    image_columns,
    order_card_columns,
    reshape_to_wide,
    url_columns,
    write_card_tables,
)
from dce_cards.design.schema import prepare_design
from dce_cards.utils.validation import (
    DesignSchemaError,
    KeyIntegrityError,
    UnsupportedCategoryError,
)

BASE_URL = 'https://cards.test/'


@pytest.fixture
def settings():
    return DesignSettings(inputs={}, card_base_url=BASE_URL)


class TestHelpers:
    """Tests for level formatting and URLs."""

    @pytest.mark.unit
    def test_format_level(self):
        assert format_level(2.0) == '2'
        assert format_level(2.5) == '2.5'
        assert format_level(10) == '10'
        assert format_level('high') == 'high'

    @pytest.mark.unit
    def test_card_url(self):
        assert card_url(BASE_URL, 'miles', 3, 1) == 'https://cards.test/miles_3_1.png'
        assert card_url(BASE_URL, 'minutes', 6.0, 0, '.jpg') == 'https://cards.test/minutes_6_0.jpg'


class TestConcatenate:
    """Tests for combining per-treatment designs."""

    @pytest.mark.unit
    def test_keeps_every_row(self, design_tables):
        combined = concatenate_designs(design_tables)
        assert len(combined) == 192
        assert set(combined['treatment']) == {'miles', 'minutes'}

    @pytest.mark.unit
    def test_column_mismatch(self, design_tables):
        extra = design_tables[1].assign(notes='x')
        with pytest.raises(DesignSchemaError, match='notes'):
            concatenate_designs([design_tables[0], extra], ['miles', 'minutes'])

    @pytest.mark.unit
    def test_same_treatment_twice(self, design_tables):
        with pytest.raises(KeyIntegrityError):
            concatenate_designs([design_tables[0], design_tables[0]])

    @pytest.mark.unit
    def test_empty(self):
        with pytest.raises(DesignSchemaError):
            concatenate_designs([])


class TestReshape:
    """Tests for the long-to-wide pivot."""

    @pytest.mark.unit
    def test_one_row_per_card(self, combined_design):
        wide = reshape_to_wide(combined_design)
        assert len(wide) == 96
        assert not wide.duplicated(['treatment', 'block', 'card']).any()

    @pytest.mark.unit
    def test_values_match_long_rows(self, combined_design):
        wide = reshape_to_wide(combined_design).set_index(['treatment', 'block', 'card'])
        for _, row in combined_design.iterrows():
            key = (row['treatment'], row['block'], row['card'])
            alt = row['alt']
            for attr in ['cost', 'nature', 'farmland', 'meals_nature',
                         'meals_farmland', 'distance', 'title']:
                assert wide.loc[key, f'{attr}{alt}'] == row[attr]

    @pytest.mark.unit
    def test_dtypes_restored(self, combined_design):
        wide = reshape_to_wide(combined_design)
        assert wide['cost1'].dtype == combined_design['cost'].dtype
        assert wide['distance2'].dtype == combined_design['distance'].dtype

    @pytest.mark.unit
    def test_design_ids_not_suffixed(self, combined_design):
        wide = reshape_to_wide(combined_design)
        assert 'card_id' in wide.columns
        assert 'card_id1' not in wide.columns

    @pytest.mark.unit
    def test_three_alternatives(self, three_alt_design):
        wide = reshape_to_wide(three_alt_design)
        assert len(wide) == 8
        assert {'cost1', 'cost2', 'cost3'} <= set(wide.columns)


class TestPresentation:
    """Tests for image references and card URLs."""

    @pytest.mark.unit
    def test_image_paths(self, combined_design, settings):
        cards = derive_presentation_fields(reshape_to_wide(combined_design), settings)
        row = cards.iloc[0]
        assert row['image_cost'] == f"images/cost_{format_level(row['cost1'])}.png"
        assert row['image_nature'] == f"images/nature_{format_level(row['nature1'])}.png"

    @pytest.mark.unit
    def test_distance_namespace(self, combined_design, settings):
        cards = derive_presentation_fields(reshape_to_wide(combined_design), settings)
        miles = cards[cards['treatment'] == 'miles']
        minutes = cards[cards['treatment'] == 'minutes']
        assert miles['image_distance'].str.startswith('images/distance_miles_').all()
        assert minutes['image_distance'].str.startswith('images/distance_minutes_').all()

    @pytest.mark.unit
    def test_urls_depend_on_block_only(self, combined_design, settings):
        cards = derive_presentation_fields(reshape_to_wide(combined_design), settings)
        block = cards[(cards['treatment'] == 'minutes') & (cards['block'] == 4)]
        assert block['card_url_2'].nunique() == 1
        assert block['card_url_2'].iloc[0] == 'https://cards.test/minutes_4_2.png'
        assert block['card_url_example'].iloc[0] == 'https://cards.test/minutes_4_0.png'

    @pytest.mark.unit
    def test_urls_deterministic(self, combined_design, settings):
        first = derive_presentation_fields(reshape_to_wide(combined_design), settings)
        second = derive_presentation_fields(reshape_to_wide(combined_design), settings)
        pd.testing.assert_frame_equal(first[url_columns()], second[url_columns()])

    @pytest.mark.unit
    def test_n_url_cards(self, combined_design):
        settings = DesignSettings(inputs={}, n_url_cards=3)
        cards = derive_presentation_fields(reshape_to_wide(combined_design), settings)
        assert 'card_url_3' in cards.columns
        assert 'card_url_4' not in cards.columns

    @pytest.mark.unit
    def test_unknown_treatment(self, combined_design, settings):
        wide = reshape_to_wide(combined_design)
        wide.loc[0, 'treatment'] = 'kilometres'
        with pytest.raises(UnsupportedCategoryError):
            derive_presentation_fields(wide, settings)


class TestCardTables:
    """Tests for the assembled outputs."""

    @pytest.mark.unit
    def test_column_order(self, design_tables, settings):
        _, _, card_db = build_card_tables(design_tables, settings)
        expected = (
            ['treatment', 'block', 'card', 'card_id', 'card_dcreate',
             'cost1', 'nature1', 'farmland1', 'meals_nature1', 'meals_farmland1',
             'distance1', 'title1']
            + image_columns() + url_columns()
            + ['cost2', 'nature2', 'farmland2', 'meals_nature2', 'meals_farmland2',
               'distance2', 'title2']
        )
        assert list(card_db.columns) == expected

    @pytest.mark.unit
    def test_rows_sorted(self, design_tables, settings):
        _, _, card_db = build_card_tables(design_tables, settings)
        sorted_db = card_db.sort_values(['treatment', 'block', 'card']).reset_index(drop=True)
        pd.testing.assert_frame_equal(card_db, sorted_db)

    @pytest.mark.unit
    def test_extra_columns(self, raw_design_miles, raw_design_minutes, settings):
        tables = [
            prepare_design(raw_design_miles.assign(notes='a'), 'miles'),
            prepare_design(raw_design_minutes.assign(notes='b'), 'minutes'),
        ]
        _, wide, card_db = build_card_tables(tables, settings)
        assert {'notes1', 'notes2'} <= set(wide.columns)
        assert 'notes1' not in card_db.columns

    @pytest.mark.unit
    def test_order_requires_layout(self, combined_design):
        wide = reshape_to_wide(combined_design)
        with pytest.raises(DesignSchemaError, match='image_cost'):
            order_card_columns(wide)

    @pytest.mark.unit
    def test_write(self, design_tables, settings, tmp_path):
        combined, wide, card_db = build_card_tables(design_tables, settings)
        output = OutputSettings(dir=str(tmp_path / 'out'))
        paths = write_card_tables(combined, wide, card_db, output)

        assert [p.name for p in paths] == [
            'design_combined.csv', 'design_wide.csv', 'card_database.csv'
        ]
        assert not list((tmp_path / 'out').glob('*.tmp'))
        written = pd.read_csv(output.path('card_database'))
        assert list(written.columns) == list(card_db.columns)
        assert len(written) == 96
