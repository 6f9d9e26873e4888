"""
Model-Fitting Orchestration
===========================

Fits each registered specification independently (no warm-starting) and
collects coefficient tables and fit statistics.

A specification that cannot be estimated does not stop the sequence:
    failed          the solver or the builder raised a model error
    not_identified  the solver finished but did not converge, some
                    standard errors are undefined or the Hessian is
                    singular
    ok              converged with a regular Hessian and finite,
                    positive standard errors

Biogeme writes its iteration and report files to the working directory, so
each fit runs inside `output_dir`.

Usage:
    frame = to_estimation_frame(panel)
    results = run_model_sequence(frame, ModelRegistry.sequence())
    write_fit_reports(results, 'results')
"""

import os
import warnings
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

import biogeme.biogeme as bio
import biogeme.database as db
from biogeme.exceptions import BiogemeError

from dce_cards import constants as C
from dce_cards.models.estimation_data import attribute_levels
from dce_cards.models.specifications import ModelSpecification, UtilityTerms
from dce_cards.utils.io import write_table
from dce_cards.utils.logging_config import ComparisonLogger, EstimationLogger, get_logger

logger = get_logger(__name__)

STATUS_OK = 'ok'
STATUS_NOT_IDENTIFIED = 'not_identified'
STATUS_FAILED = 'failed'

# Below this the Hessian is treated as singular
EIGENVALUE_THRESHOLD = 1e-5
EIGENVECTOR_WEIGHT = 0.1

# Solver and builder errors recorded as a failed fit; anything else propagates
MODEL_ERRORS = (BiogemeError, ValueError, ArithmeticError, np.linalg.LinAlgError)

# (restricted, full) specifications compared by likelihood ratio
NESTED_PAIRS = [
    ('null', 'mnl'),
    ('mnl', 'mnl_interactions'),
    ('mnl', 'mxl'),
]


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class FitResult:
    """Outcome of one specification fit."""
    name: str
    label: str
    status: str
    n_obs: int
    n_individuals: int
    message: str = ''
    converged: bool = False
    ll: float = np.nan
    null_ll: float = np.nan
    k: int = 0
    aic: float = np.nan
    bic: float = np.nan
    betas: Dict[str, float] = field(default_factory=dict)
    std_errs: Dict[str, float] = field(default_factory=dict)
    t_stats: Dict[str, float] = field(default_factory=dict)
    p_values: Dict[str, float] = field(default_factory=dict)
    covariance: Optional[pd.DataFrame] = None

    @property
    def rho2(self) -> float:
        if not self.null_ll or np.isnan(self.ll):
            return np.nan
        return 1 - self.ll / self.null_ll

    @property
    def usable(self) -> bool:
        return self.status != STATUS_FAILED

    def parameter_table(self) -> pd.DataFrame:
        """Coefficient estimates with robust standard errors."""
        rows = []
        for param, value in self.betas.items():
            se = self.std_errs.get(param, np.nan)
            rows.append({
                'Parameter': param,
                'Estimate': value,
                'Std_Error': se,
                't_stat': self.t_stats.get(param, np.nan),
                'p_value': self.p_values.get(param, np.nan),
                'CI_95_Low': value - C.Z_95 * se,
                'CI_95_High': value + C.Z_95 * se,
            })
        return pd.DataFrame(rows, columns=[
            'Parameter', 'Estimate', 'Std_Error', 't_stat', 'p_value',
            'CI_95_Low', 'CI_95_High',
        ])

    def summary_row(self) -> Dict:
        return {
            'Model': self.label,
            'Status': self.status,
            'LL': self.ll,
            'Null_LL': self.null_ll,
            'K': self.k,
            'N': self.n_obs,
            'AIC': self.aic,
            'BIC': self.bic,
            'Rho2': self.rho2,
            'Converged': self.converged,
            'Message': self.message,
        }


def null_loglikelihood(n_obs: int, n_alternatives: int) -> float:
    """Log-likelihood of equal choice probabilities."""
    return n_obs * np.log(1.0 / n_alternatives)


def hessian_eigen(results) -> Tuple[Optional[float], Optional[np.ndarray], Optional[float]]:
    """
    Smallest absolute Hessian eigenvalue, its eigenvector and the condition number.

    Robust standard errors stay finite on a singular Hessian; collinear
    specifications only show up here.
    """
    value = getattr(results, 'smallest_eigenvalue', None)
    vector = getattr(results, 'smallest_eigenvector', None)
    condition = getattr(results, 'condition_number', None)

    if value is None:
        hessian = getattr(results, 'hessian', None)
        if hessian is None:
            return None, None, None
        eigenvalues, eigenvectors = np.linalg.eigh(np.asarray(hessian, dtype=float))
        abs_eigenvalues = np.abs(eigenvalues)
        idx = int(np.argmin(abs_eigenvalues))
        value, vector = abs_eigenvalues[idx], eigenvectors[:, idx]
        if condition is None and abs_eigenvalues[idx] > 0:
            condition = abs_eigenvalues.max() / abs_eigenvalues[idx]

    vector = None if vector is None else np.asarray(vector, dtype=float).ravel()
    condition = None if condition is None else float(condition)
    return abs(float(value)), vector, condition


def identification_problems(std_errs: Dict[str, float], converged: bool,
                            smallest_eigenvalue: Optional[float] = None,
                            eigenvector: Optional[np.ndarray] = None,
                            condition_number: Optional[float] = None) -> List[str]:
    """
    Reasons a finished fit cannot be trusted.

    Args:
        std_errs: Robust standard errors by parameter, in estimation order
        converged: Solver convergence flag
        smallest_eigenvalue: Smallest absolute eigenvalue of the Hessian
        eigenvector: Eigenvector of that eigenvalue; parameters with a
            weight above EIGENVECTOR_WEIGHT are named
        condition_number: Reported alongside a singular Hessian
    """
    problems = []
    if not converged:
        problems.append("optimization did not converge")

    undefined = [p for p, se in std_errs.items() if not np.isfinite(se) or se <= 0]
    if undefined:
        problems.append(f"singular information matrix, undefined SE for {undefined}")

    if smallest_eigenvalue is not None and smallest_eigenvalue < EIGENVALUE_THRESHOLD:
        message = f"singular information matrix (smallest eigenvalue {smallest_eigenvalue:.2e}"
        if condition_number is not None:
            message += f", condition number {condition_number:.2e}"
        message += ")"
        names = list(std_errs)
        if eigenvector is not None and len(eigenvector) == len(names):
            involved = [n for n, w in zip(names, eigenvector) if abs(w) > EIGENVECTOR_WEIGHT]
            message += f" along {involved}"
        problems.append(message)
    return problems


def _robust_covariance(results, names: List[str]) -> Optional[pd.DataFrame]:
    """Robust covariance labelled by parameter name."""
    try:
        if hasattr(results, 'get_robust_var_covar'):
            matrix = results.get_robust_var_covar()
            if isinstance(matrix, pd.DataFrame):
                return matrix
        else:
            # Biogeme 3.3.1+ exposes an unlabelled matrix in estimation order
            matrix = results.robust_variance_covariance_matrix
        matrix = np.asarray(matrix, dtype=float)
        return pd.DataFrame(matrix, index=names, columns=names)
    except (AttributeError, ValueError, np.linalg.LinAlgError) as e:
        logger.warning(f"Robust covariance unavailable: {e}")
        return None


# =============================================================================
# ESTIMATION
# =============================================================================

def make_terms(frame: pd.DataFrame, panel: Optional[pd.DataFrame] = None,
               attributes: Sequence[str] = C.BASE_ATTRIBUTES,
               interactions: Sequence[Tuple[str, str]] = C.INTERACTIONS_DEFAULT
               ) -> UtilityTerms:
    """Utility vocabulary for an estimation frame built from `panel`."""
    alternatives = sorted(int(c[len('asc'):]) for c in frame.columns
                          if c.startswith('asc') and c[len('asc'):].isdigit())
    levels = attribute_levels(panel, attributes) if panel is not None else {}
    return UtilityTerms(
        alternatives=alternatives,
        attributes=list(attributes),
        interactions=list(interactions),
        levels=levels,
    )


@contextmanager
def _working_directory(path: Optional[Path]):
    """Run the enclosed block inside `path` (no-op when None)."""
    if path is None:
        yield
        return
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    previous = Path.cwd()
    os.chdir(path)
    try:
        yield
    finally:
        os.chdir(previous)


def cleanup_iter_files(model_name: str, directory: Path = None) -> None:
    """Delete Biogeme's saved iterations so a fit never warm-starts."""
    directory = Path.cwd() if directory is None else Path(directory)
    iter_file = directory / f'__{model_name}.iter'
    if iter_file.exists():
        iter_file.unlink()
        logger.debug(f"Deleted {iter_file}")


def fit_model(frame: pd.DataFrame,
              spec: ModelSpecification,
              terms: UtilityTerms,
              n_draws: int = C.N_DRAWS_DEFAULT,
              output_dir: Optional[Path] = None,
              verbose: bool = True) -> FitResult:
    """
    Estimate one specification.

    Args:
        frame: Wide estimation frame (see to_estimation_frame)
        spec: Registered specification
        terms: Alternatives, attributes, interactions and levels
        n_draws: Draws for simulated likelihoods
        output_dir: Directory for Biogeme's own reports (default: cwd)
        verbose: Print progress

    Returns:
        FitResult; model errors (MODEL_ERRORS) are recorded as a failed fit,
        any other exception propagates
    """
    n_obs = len(frame)
    n_individuals = int(frame['ID'].nunique())
    null_ll = null_loglikelihood(n_obs, len(terms.alternatives))

    est_log = EstimationLogger(spec.label, verbose=verbose)
    est_log.start()

    if output_dir is not None:
        output_dir = Path(output_dir).resolve()

    try:
        database = db.Database(spec.name, frame)
        if spec.panel:
            database.panel('ID')

        logprob = spec.builder(terms)

        # biogeme.toml, the .iter file and the reports all land in output_dir
        with _working_directory(output_dir), warnings.catch_warnings():
            warnings.simplefilter('ignore')
            if spec.uses_draws:
                biogeme_model = bio.BIOGEME(database, logprob, number_of_draws=n_draws)
            else:
                biogeme_model = bio.BIOGEME(database, logprob)
            biogeme_model.model_name = spec.name

            cleanup_iter_files(spec.name)
            results = biogeme_model.estimate()

        estimates = results.get_estimated_parameters().set_index('Name')
        betas = estimates['Value'].to_dict()
        std_errs = estimates['Robust std err.'].to_dict()
        t_stats = estimates['Robust t-stat.'].to_dict()
        p_values = estimates['Robust p-value'].to_dict()

        ll = float(results.final_loglikelihood)
        k = int(results.number_of_free_parameters)
        aic = 2 * k - 2 * ll
        bic = k * np.log(n_obs) - 2 * ll
        converged = bool(getattr(results, 'algorithm_has_converged', True))
        smallest_eigenvalue, eigenvector, condition = hessian_eigen(results)
    except MODEL_ERRORS as e:
        message = f"{type(e).__name__}: {e}"
        est_log.failed(message)
        return FitResult(
            name=spec.name, label=spec.label, status=STATUS_FAILED,
            n_obs=n_obs, n_individuals=n_individuals,
            null_ll=null_ll, message=message,
        )

    result = FitResult(
        name=spec.name, label=spec.label, status=STATUS_OK,
        n_obs=n_obs, n_individuals=n_individuals, converged=converged,
        ll=ll, null_ll=null_ll, k=k, aic=aic, bic=bic,
        betas=betas, std_errs=std_errs, t_stats=t_stats, p_values=p_values,
        covariance=_robust_covariance(results, list(betas)),
    )

    problems = identification_problems(std_errs, converged, smallest_eigenvalue,
                                       eigenvector, condition)
    if problems:
        result.status = STATUS_NOT_IDENTIFIED
        result.message = '; '.join(problems)
        est_log.not_identified(result.message)
    else:
        est_log.converged(ll=ll, k=k, aic=aic, bic=bic, rho2=result.rho2)
    est_log.parameters(betas, std_errs)

    return result


def run_model_sequence(frame: pd.DataFrame,
                       specs: Sequence[ModelSpecification],
                       terms: UtilityTerms,
                       n_draws: int = C.N_DRAWS_DEFAULT,
                       output_dir: Optional[Path] = None,
                       verbose: bool = True) -> List[FitResult]:
    """
    Fit every specification in order and print a comparison.

    Each fit starts from the default starting values; a failure is recorded
    and the next specification is attempted.
    """
    logger.info(
        f"Fitting {len(specs)} specification(s) on {len(frame):,} occasions "
        f"from {frame['ID'].nunique():,} respondents"
    )

    results = [
        fit_model(frame, spec, terms, n_draws=n_draws,
                  output_dir=output_dir, verbose=verbose)
        for spec in specs
    ]

    comparison = ComparisonLogger(verbose=verbose)
    comparison.header()
    for r in results:
        if r.status == STATUS_FAILED:
            comparison.model_failure(r.label, r.status, r.message)
        else:
            comparison.model_result(r.label, r.ll, r.k, r.aic, r.bic, status=r.status)

    by_name = {r.name: r for r in results if r.status == STATUS_OK}
    for restricted, full in NESTED_PAIRS:
        if restricted in by_name and full in by_name:
            test = lr_test(by_name[restricted], by_name[full])
            if test['df'] > 0:
                comparison.lr_test(by_name[restricted].label, by_name[full].label,
                                   test['LR'], test['df'], test['p_value'])

    fitted = [r for r in results if r.status == STATUS_OK]
    if fitted:
        best = min(fitted, key=lambda r: r.aic)
        comparison.best_model(best.label, "AIC")
    else:
        logger.warning("No specification produced identified estimates")

    return results


def lr_test(restricted: FitResult, full: FitResult) -> Dict[str, float]:
    """Likelihood ratio test of nested specifications."""
    df = full.k - restricted.k
    stat = 2 * (full.ll - restricted.ll)
    p_value = float(stats.chi2.sf(stat, df)) if df > 0 else np.nan
    return {'LR': stat, 'df': df, 'p_value': p_value}


# =============================================================================
# REPORTS
# =============================================================================

def comparison_table(results: Sequence[FitResult]) -> pd.DataFrame:
    summary = pd.DataFrame([r.summary_row() for r in results])
    ok = summary['Status'] == STATUS_OK
    summary['AIC_Rank'] = summary['AIC'].where(ok).rank()
    summary['BIC_Rank'] = summary['BIC'].where(ok).rank()
    return summary


def write_fit_reports(results: Sequence[FitResult], output_dir) -> List[Path]:
    """Write one coefficient table per usable fit and the comparison table."""
    output_dir = Path(output_dir)
    written = []
    for r in results:
        if r.usable:
            path = output_dir / f'parameter_estimates_{r.name}.csv'
            written.append(write_table(r.parameter_table(), path))
    written.append(write_table(comparison_table(results), output_dir / 'model_comparison.csv'))
    return written
