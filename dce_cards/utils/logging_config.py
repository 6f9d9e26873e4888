"""
Structured Logging for the Choice-Card Pipeline
===============================================

Provides consistent logging across the transformer, the simulator and the
model fits.

Usage:
    from dce_cards.utils.logging_config import get_logger, EstimationLogger

    # Simple logging
    logger = get_logger(__name__)
    logger.info("Reshaping design")

    # Structured estimation logging
    est_log = EstimationLogger("MNL")
    est_log.start()
    est_log.converged(ll=-1234.5, k=5, aic=2479.0)
"""

import json
import logging
import sys
import warnings
from datetime import datetime, timezone
from typing import Dict, Optional


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    format_style: str = "standard"
) -> None:
    """
    Configure logging for the package.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        format_style: "standard", "detailed", or "json"
    """
    formats = {
        "standard": "%(asctime)s | %(levelname)-8s | %(message)s",
        "detailed": "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
    }

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if format_style == "json":
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter(formats.get(format_style, formats["standard"]),
                              datefmt="%Y-%m-%d %H:%M:%S")
        )
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(formats["detailed"], datefmt="%Y-%m-%d %H:%M:%S")
        )
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module."""
    return logging.getLogger(name)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


# =============================================================================
# ESTIMATION LOGGER
# =============================================================================

class EstimationLogger:
    """
    Structured logger for one model fit.

    Example:
        logger = EstimationLogger("MNL")
        logger.start()
        logger.converged(ll=-1800.0, k=5, aic=3610.0)
    """

    def __init__(self, model_name: str, verbose: bool = True):
        self.model_name = model_name
        self.verbose = verbose
        self.start_time: Optional[datetime] = None
        self._logger = get_logger(f"dce_cards.estimation.{model_name}")

    def _print(self, message: str) -> None:
        """Print if verbose mode is on."""
        if self.verbose:
            print(message)

    def _elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return (datetime.now() - self.start_time).total_seconds()

    def start(self) -> None:
        """Log estimation start."""
        self.start_time = datetime.now()
        self._print(f"\n{'='*60}")
        self._print(f"Estimating: {self.model_name}")
        self._print(f"{'='*60}")
        self._logger.info(f"Started estimation: {self.model_name}")

    def converged(self, ll: float, k: int, aic: float, bic: Optional[float] = None,
                  rho2: Optional[float] = None) -> None:
        """Log successful convergence."""
        elapsed = self._elapsed()

        self._print(f"\n  CONVERGED in {elapsed:.1f}s")
        self._print(f"  LL: {ll:.2f} | K: {k} | AIC: {aic:.2f}")
        if bic is not None:
            self._print(f"  BIC: {bic:.2f}")
        if rho2 is not None:
            self._print(f"  rho2: {rho2:.4f}")

        self._logger.info(
            f"Converged: {self.model_name} | LL={ll:.2f} | K={k} | "
            f"AIC={aic:.2f} | time={elapsed:.1f}s"
        )

    def not_identified(self, reason: str) -> None:
        """Log a fit that finished but cannot be trusted."""
        self._print(f"\n  NOT IDENTIFIED: {reason}")
        self._logger.warning(f"Not identified: {self.model_name} | {reason}")

    def failed(self, reason: str) -> None:
        """Log estimation failure."""
        elapsed = self._elapsed()
        self._print(f"\n  FAILED after {elapsed:.1f}s: {reason}")
        self._logger.error(f"Failed: {self.model_name} | {reason}")

    def parameters(self, betas: Dict[str, float], std_errs: Optional[Dict[str, float]] = None) -> None:
        """Log estimated parameters."""
        self._print("\n  Parameters:")
        for name, value in sorted(betas.items()):
            se = std_errs.get(name, float('nan')) if std_errs else float('nan')
            t_stat = value / se if se and se != 0 else float('nan')
            sig = "***" if abs(t_stat) > 2.576 else "**" if abs(t_stat) > 1.96 else "*" if abs(t_stat) > 1.645 else ""
            self._print(f"    {name:24s}: {value:8.4f} (SE: {se:6.4f}) {sig}")

        self._logger.info(f"Parameters estimated: {list(betas.keys())}")


# =============================================================================
# MODEL COMPARISON LOGGER
# =============================================================================

class ComparisonLogger:
    """Logger for model comparison output."""

    def __init__(self, verbose: bool = True):
        self.verbose = verbose
        self._logger = get_logger("dce_cards.comparison")

    def _print(self, message: str) -> None:
        if self.verbose:
            print(message)

    def header(self, title: str = "MODEL COMPARISON") -> None:
        """Print comparison header."""
        self._print(f"\n{'#'*60}")
        self._print(f"# {title}")
        self._print(f"{'#'*60}")

    def model_result(self, name: str, ll: float, k: int, aic: float,
                     bic: Optional[float] = None, status: str = "ok") -> None:
        """Log single model result."""
        self._print(f"\n{name}:")
        self._print(f"  LL: {ll:.2f} | K: {k} | AIC: {aic:.2f} | [{status.upper()}]")
        if bic is not None:
            self._print(f"  BIC: {bic:.2f}")

    def model_failure(self, name: str, status: str, message: str) -> None:
        """Log a specification that produced no usable estimates."""
        self._print(f"\n{name}:")
        self._print(f"  [{status.upper()}] {message}")
        self._logger.warning(f"{name}: {status} ({message})")

    def lr_test(self, restricted: str, full: str, lr_stat: float,
                df: int, p_value: float) -> None:
        """Log likelihood ratio test result."""
        sig = "***" if p_value < 0.001 else "**" if p_value < 0.01 else "*" if p_value < 0.05 else ""
        self._print(f"\nLR Test: {restricted} vs {full}")
        self._print(f"  LR = {lr_stat:.2f}, df = {df}, p = {p_value:.4f} {sig}")
        self._logger.info(f"LR test: {restricted} vs {full}, LR={lr_stat:.2f}, p={p_value:.4f}")

    def best_model(self, name: str, criterion: str = "AIC") -> None:
        """Log best model selection."""
        self._print(f"\n{'='*60}")
        self._print(f"Best model by {criterion}: {name}")
        self._print(f"{'='*60}")
        self._logger.info(f"Best model ({criterion}): {name}")


# =============================================================================
# WARNING CONFIGURATION
# =============================================================================

def configure_warnings(debug_mode: bool = False) -> None:
    """
    Configure warning filters for estimation.

    By default, suppresses expected warnings from Biogeme optimization.
    Set debug_mode=True to see all warnings for troubleshooting.

    Suppressed warnings (when debug_mode=False):
        - FutureWarning: Biogeme API deprecation warnings
        - overflow: Numerical overflow during exp() in early iterations
        - divide by zero: Can occur during probability calculation
        - invalid value: NaN during optimization convergence
    """
    if debug_mode:
        warnings.filterwarnings('default')
        logging.info("Debug mode: All warnings enabled")
    else:
        warnings.filterwarnings('ignore', category=FutureWarning)
        warnings.filterwarnings('ignore', message='.*overflow.*')
        warnings.filterwarnings('ignore', message='.*divide by zero.*')
        warnings.filterwarnings('ignore', message='.*invalid value.*')
