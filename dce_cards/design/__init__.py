"""Design-to-cards transformer."""
from .schema import DesignRow, load_design, prepare_design
from .cards import (
    concatenate_designs,
    reshape_to_wide,
    derive_presentation_fields,
    order_card_columns,
    build_card_tables,
    write_card_tables,
)
