"""Policy analysis derived from fitted choice models."""
from .wtp import WTPResult, compute_wtp
