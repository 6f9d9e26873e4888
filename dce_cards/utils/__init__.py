"""Utils module for the choice-card pipeline."""
from .logging_config import (
    setup_logging,
    get_logger,
    EstimationLogger,
    ComparisonLogger,
    configure_warnings
)
from .validation import (
    DesignSchemaError,
    KeyIntegrityError,
    UnsupportedCategoryError,
)
