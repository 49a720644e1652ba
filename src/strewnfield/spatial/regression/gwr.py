"""
gwr.py - Geographically weighted regression

Fits a separate weighted least squares regression centred on every
observation, with weights decaying with distance from the focal point.
The bandwidth is either adaptive (a proportion q of the observations
enters each local fit) or fixed (a distance), and can be selected by
leave-one-out cross-validation or AICc.

Example
-------
>>> X = table.meta[['gravity', 'solar']]
>>> y = table.meta['log_mass']
>>>
>>> # Select q by cross-validation, then fit
>>> sel = sreg.select_bandwidth(X, y, table)
>>> gwr = sreg.fit_gwr(X, y, table, bandwidth=sel.bandwidth, n_jobs=4)
>>> gwr.params.describe()
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
import pandas as pd

from strewnfield.data.config import InsufficientDataError, NumericInstabilityError
from strewnfield.spatial.shared.utils import (
    pairwise_distances,
    resolve_coords,
    resolve_metric,
    validate_metric,
)
from .ols import prepare_design

KERNELS = ('bisquare', 'gaussian')
CRITERIA = ('cv', 'aicc')

# Golden ratio step for the bandwidth search
_GOLDEN = (np.sqrt(5) - 1) / 2


@dataclass(frozen=True, eq=False)
class BandwidthSelection:
    """
    Result of a bandwidth search.

    Attributes
    ----------
    bandwidth : float
        Proportion of observations (adaptive) or distance (fixed).
    score : float
        Criterion value at the selected bandwidth (lower is better).
    history : pd.DataFrame
        Every evaluated (bandwidth, score), in evaluation order.
    """
    bandwidth: float
    score: float
    criterion: str
    kernel: str
    adaptive: bool
    history: pd.DataFrame

    def __repr__(self) -> str:
        kind = 'adaptive q' if self.adaptive else 'fixed'
        return (
            f"BandwidthSelection ({kind}={self.bandwidth:.4g}, "
            f"{self.criterion}={self.score:.4g}, kernel={self.kernel})"
        )


@dataclass(frozen=True, eq=False)
class GWRResult:
    """
    Container for a GWR fit.

    Attributes
    ----------
    params : pd.DataFrame
        (n x p) local coefficients, one row per observation.
    std_errors : pd.DataFrame
        (n x p) local standard errors.
    fitted : np.ndarray
        x_i' beta_i for each observation.
    residuals : np.ndarray
    local_r2 : pd.Series
        Kernel-weighted R2 of each local fit; in [0, 1] when the design
        has an intercept.
    local_bandwidths : np.ndarray
        Distance bandwidth of each local kernel (inf when an adaptive
        neighbourhood spans the whole sample).
    bandwidth : float
        Proportion q (adaptive) or distance (fixed).
    sigma2 : float
        RSS / (n - tr(S)).
    tr_S : float
        Trace of the hat matrix (effective number of parameters).
    aicc : float
    r2 : float
        Global R2 of the fitted values.
    cv_score : float or None
        Leave-one-out CV score when the bandwidth was selected by CV.
    """
    params: pd.DataFrame
    std_errors: pd.DataFrame
    fitted: np.ndarray
    residuals: np.ndarray
    local_r2: pd.Series
    local_bandwidths: np.ndarray
    bandwidth: float
    adaptive: bool
    kernel: str
    sigma2: float
    tr_S: float
    aicc: float
    r2: float
    cv_score: float | None = None

    @property
    def n(self) -> int:
        return len(self.params)

    @property
    def tvalues(self) -> pd.DataFrame:
        return self.params / self.std_errors

    def summary(self) -> pd.DataFrame:
        """Distribution of local coefficients across observations."""
        return self.params.describe().T[['mean', 'std', 'min', '50%', 'max']]

    def __repr__(self) -> str:
        kind = 'q' if self.adaptive else 'bw'
        return (
            f"GWRResult (n={self.n}, {kind}={self.bandwidth:.4g}, "
            f"kernel={self.kernel}, R2={self.r2:.3f}, AICc={self.aicc:.4g})"
        )


# ========== Kernel weights ==========

def _local_bandwidths(D: np.ndarray, bandwidth: float, adaptive: bool) -> np.ndarray:
    """
    Distance bandwidth per focal observation.

    An adaptive neighbourhood spanning the whole sample (q = 1) has an
    infinite bandwidth, so every kernel weight is 1 and each local fit
    is the global OLS fit.
    """
    n = D.shape[0]
    if not adaptive:
        return np.full(n, float(bandwidth))
    m = int(np.clip(np.ceil(bandwidth * n), 1, n))
    if m == n:
        return np.full(n, np.inf)
    # m-th nearest, self included; nudged so the m-th point keeps a weight
    b = np.partition(D, m - 1, axis=1)[:, m - 1] * 1.0000001
    floor = 1e-12 * max(float(D.max()), 1.0)
    return np.maximum(b, floor)


def _kernel_weights(d: np.ndarray, b: float, kernel: str, adaptive: bool) -> np.ndarray:
    u = d / b
    if kernel == 'bisquare':
        return np.where(u < 1, (1 - u ** 2) ** 2, 0.0)
    w = np.exp(-0.5 * u ** 2)
    if adaptive:
        w[u > 1] = 0.0
    return w


# ========== Local fits ==========

def _local_fit(
    i: int,
    X: np.ndarray,
    y: np.ndarray,
    D: np.ndarray,
    b: np.ndarray,
    kernel: str,
    adaptive: bool,
    leave_out: bool,
    max_condition: float,
) -> tuple[np.ndarray, float, np.ndarray, float]:
    """
    Weighted least squares centred on observation i.

    Returns
    -------
    beta : np.ndarray (p,)
    hat_ii : float
        Diagonal entry of the hat matrix (0 when leave_out).
    cc_diag : np.ndarray (p,)
        diag(C C') with beta = C y, for standard errors.
    local_r2 : float
    """
    p = X.shape[1]
    w = _kernel_weights(D[i], b[i], kernel, adaptive)
    if leave_out:
        w[i] = 0.0

    n_support = int(np.count_nonzero(w))
    if n_support < p:
        raise NumericInstabilityError(
            f"Local fit at observation {i} has {n_support} weighted "
            f"observations for {p} terms (bandwidth={b[i]:.4g}); "
            "use a larger bandwidth"
        )

    Xw = X * w[:, None]
    XtWX = X.T @ Xw
    cond = np.linalg.cond(XtWX)
    if not np.isfinite(cond) or cond > max_condition:
        raise NumericInstabilityError(
            f"Local design at observation {i} is ill-conditioned "
            f"(cond={cond:.3g}, bandwidth={b[i]:.4g}); use a larger bandwidth"
        )

    C = np.linalg.solve(XtWX, Xw.T)          # (p, n)
    beta = C @ y
    hat_ii = 0.0 if leave_out else float(X[i] @ C[:, i])
    cc_diag = np.sum(C ** 2, axis=1)

    resid_local = y - X @ beta
    sw = w.sum()
    y_bar = (w @ y) / sw
    tss_w = float(w @ (y - y_bar) ** 2)
    rss_w = float(w @ resid_local ** 2)
    local_r2 = 1 - rss_w / tss_w if tss_w > 0 else np.nan

    return beta, hat_ii, cc_diag, local_r2


def _gwr_pass(
    X: np.ndarray,
    y: np.ndarray,
    D: np.ndarray,
    bandwidth: float,
    kernel: str,
    adaptive: bool,
    leave_out: bool = False,
    n_jobs: int = 1,
    max_condition: float = 1e12,
) -> dict:
    """Run every local fit; results are placed by observation index."""
    n, p = X.shape
    b = _local_bandwidths(D, bandwidth, adaptive)

    def fit(i: int):
        return _local_fit(i, X, y, D, b, kernel, adaptive, leave_out, max_condition)

    if n_jobs == 1:
        results = [fit(i) for i in range(n)]
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            # map yields in submission order
            results = list(pool.map(fit, range(n)))

    betas = np.empty((n, p))
    hat = np.empty(n)
    cc = np.empty((n, p))
    local_r2 = np.empty(n)
    for i, (beta, hat_ii, cc_diag, r2) in enumerate(results):
        betas[i] = beta
        hat[i] = hat_ii
        cc[i] = cc_diag
        local_r2[i] = r2

    fitted = np.sum(X * betas, axis=1)
    return {
        'betas': betas,
        'hat': hat,
        'cc': cc,
        'local_r2': local_r2,
        'fitted': fitted,
        'local_bandwidths': b,
    }


def _aicc(rss: float, n: int, tr_S: float) -> float:
    if n - 2 - tr_S <= 0:
        return np.inf
    sigma2_ml = max(rss / n, 1e-300)
    return n * np.log(sigma2_ml) + n * np.log(2 * np.pi) + n * (n + tr_S) / (n - 2 - tr_S)


def _score(
    X: np.ndarray,
    y: np.ndarray,
    D: np.ndarray,
    bandwidth: float,
    kernel: str,
    adaptive: bool,
    criterion: str,
    n_jobs: int,
    max_condition: float,
) -> float:
    """CV or AICc at one bandwidth; infeasible bandwidths score inf."""
    try:
        out = _gwr_pass(X, y, D, bandwidth, kernel, adaptive,
                        leave_out=(criterion == 'cv'), n_jobs=n_jobs,
                        max_condition=max_condition)
    except NumericInstabilityError:
        return np.inf
    resid = y - out['fitted']
    rss = float(resid @ resid)
    if criterion == 'cv':
        return rss
    return _aicc(rss, len(y), float(out['hat'].sum()))


def _golden_section(
    f: Callable[[float], float],
    lower: float,
    upper: float,
    tol: float,
    max_iter: int = 100,
) -> tuple[float, float, list[tuple[float, float]]]:
    """Golden-section minimisation of f on [lower, upper]."""
    history: list[tuple[float, float]] = []

    def evaluate(x: float) -> float:
        score = f(x)
        history.append((x, score))
        return score

    a, c = lower, upper
    b1 = c - _GOLDEN * (c - a)
    b2 = a + _GOLDEN * (c - a)
    f1, f2 = evaluate(b1), evaluate(b2)
    for _ in range(max_iter):
        if abs(c - a) <= tol:
            break
        if f1 <= f2:
            c, b2, f2 = b2, b1, f1
            b1 = c - _GOLDEN * (c - a)
            f1 = evaluate(b1)
        else:
            a, b1, f1 = b1, b2, f2
            b2 = a + _GOLDEN * (c - a)
            f2 = evaluate(b2)

    best_x, best_score = min(history, key=lambda t: t[1])
    return best_x, best_score, history


def _prepare_inputs(X, y, coords, add_intercept, metric, crs):
    X_arr, y_arr, names = prepare_design(X, y, add_intercept=add_intercept)
    points, crs = resolve_coords(coords, crs, context='gwr')
    metric = resolve_metric(metric, coords)
    validate_metric(metric, crs)
    if len(points) != len(y_arr):
        raise ValueError(f"Got {len(points)} coordinates for {len(y_arr)} observations")
    n, p = X_arr.shape
    if n <= p + 1:
        raise InsufficientDataError(
            f"GWR with {p} terms needs more than {p + 1} observations, got {n}"
        )
    D = pairwise_distances(points, metric=metric)
    return X_arr, y_arr, names, D


def _check_options(kernel: str, criterion: str, n_jobs: int) -> None:
    if kernel not in KERNELS:
        raise ValueError(f"Unknown kernel: {kernel}. Use one of {KERNELS}.")
    if criterion not in CRITERIA:
        raise ValueError(f"Unknown criterion: {criterion}. Use one of {CRITERIA}.")
    if n_jobs < 1:
        raise ValueError(f"n_jobs must be >= 1, got {n_jobs}")


def _select(X_arr, y_arr, D, kernel, adaptive, criterion, candidates, tol, n_jobs, max_condition):
    n, p = X_arr.shape

    def score(bw: float) -> float:
        return _score(X_arr, y_arr, D, bw, kernel, adaptive, criterion, n_jobs, max_condition)

    if candidates is not None:
        history = [(float(bw), score(float(bw))) for bw in candidates]
        best_bw, best_score = min(history, key=lambda t: t[1])
    else:
        if adaptive:
            # Smallest neighbourhood that can hold p terms plus a left-out point
            lower, upper = min((p + 2) / n, 1.0), 1.0
            tol = tol if tol is not None else 1.0 / n
        else:
            lower = float(np.median(np.sort(D, axis=1)[:, min(p + 1, n - 1)]))
            upper = float(D.max())
            tol = tol if tol is not None else 1e-3 * upper
        if lower >= upper:
            raise InsufficientDataError(
                f"Bandwidth search range is empty (lower={lower:.4g}, upper={upper:.4g})"
            )
        best_bw, best_score, history = _golden_section(score, lower, upper, tol)

    if not np.isfinite(best_score):
        raise NumericInstabilityError(
            "Every evaluated bandwidth gave an ill-conditioned local fit; "
            "widen the search range or drop covariates"
        )
    return best_bw, best_score, pd.DataFrame(history, columns=['bandwidth', 'score'])


# ========== select_bandwidth ==========

def select_bandwidth(
    X: Any,
    y: Any,
    coords: Any,
    kernel: str = 'bisquare',
    adaptive: bool = True,
    criterion: str = 'cv',
    candidates: Any = None,
    tol: float | None = None,
    metric: str | None = None,
    crs: str | None = None,
    add_intercept: bool = True,
    n_jobs: int = 1,
    max_condition: float = 1e12,
) -> BandwidthSelection:
    """
    Select a GWR bandwidth.

    Parameters
    ----------
    X : pd.DataFrame or array-like (n, p)
        Covariates.
    y : array-like (n,)
        Response.
    coords : array-like (n, 2), LandingTable or PointPattern
    kernel : str
        'bisquare' or 'gaussian'.
    adaptive : bool
        If True, the bandwidth is the proportion q in (0, 1] of
        observations in each local fit; otherwise a distance.
    criterion : str
        'cv' (leave-one-out prediction error) or 'aicc'.
    candidates : array-like, optional
        Evaluate only these bandwidths. If None, golden-section search.
    tol : float, optional
        Search tolerance. Defaults to 1/n (adaptive) or 0.1% of the
        largest distance (fixed).
    metric : str, optional
        'euclidean' or 'haversine'. If None, the source table's
        config.distance_metric ('euclidean' for plain arrays).
    crs : str, optional
    add_intercept : bool
    n_jobs : int
        Worker threads for the local fits.
    max_condition : float
        Largest acceptable condition number of a local X'WX.

    Returns
    -------
    BandwidthSelection
    """
    _check_options(kernel, criterion, n_jobs)
    X_arr, y_arr, _, D = _prepare_inputs(X, y, coords, add_intercept, metric, crs)

    best_bw, best_score, history = _select(
        X_arr, y_arr, D, kernel, adaptive, criterion, candidates, tol, n_jobs, max_condition
    )

    kind = 'q' if adaptive else 'bw'
    print(f"  ✓ GWR bandwidth ({criterion}, {kernel}): {kind}={best_bw:.4g}, "
          f"score={best_score:.4g}, {len(history)} evaluations")

    return BandwidthSelection(
        bandwidth=float(best_bw),
        score=float(best_score),
        criterion=criterion,
        kernel=kernel,
        adaptive=adaptive,
        history=history,
    )


# ========== fit_gwr ==========

def fit_gwr(
    X: Any,
    y: Any,
    coords: Any,
    bandwidth: float | None = None,
    kernel: str = 'bisquare',
    adaptive: bool = True,
    criterion: str = 'cv',
    metric: str | None = None,
    crs: str | None = None,
    add_intercept: bool = True,
    n_jobs: int = 1,
    max_condition: float = 1e12,
) -> GWRResult:
    """
    Fit geographically weighted regression.

    Parameters
    ----------
    X : pd.DataFrame or array-like (n, p)
        Covariates.
    y : array-like (n,)
        Response.
    coords : array-like (n, 2), LandingTable or PointPattern
    bandwidth : float, optional
        Proportion q in (0, 1] (adaptive) or distance (fixed). If None,
        selected with `criterion`. q = 1 gives uniform weights, i.e. the
        global OLS fit at every observation.
    kernel : str
        'bisquare' or 'gaussian'. Adaptive kernels are truncated at the
        local bandwidth.
    adaptive : bool
    criterion : str
        Selection criterion when bandwidth is None.
    metric : str, optional
        'euclidean' or 'haversine'. If None, the source table's
        config.distance_metric ('euclidean' for plain arrays).
    crs : str, optional
    add_intercept : bool
    n_jobs : int
        Worker threads for the n independent local fits.
    max_condition : float
        Largest acceptable condition number of a local X'WX.

    Returns
    -------
    GWRResult

    Raises
    ------
    NumericInstabilityError
        A local design matrix is near-singular at this bandwidth.
    """
    _check_options(kernel, criterion, n_jobs)
    X_arr, y_arr, names, D = _prepare_inputs(X, y, coords, add_intercept, metric, crs)
    n, p = X_arr.shape

    cv_score = None
    if bandwidth is None:
        bandwidth, score, _ = _select(
            X_arr, y_arr, D, kernel, adaptive, criterion, None, None, n_jobs, max_condition
        )
        if criterion == 'cv':
            cv_score = float(score)
    elif adaptive and not 0 < bandwidth <= 1:
        raise ValueError(f"Adaptive bandwidth must be a proportion in (0, 1], got {bandwidth}")
    elif not adaptive and bandwidth <= 0:
        raise ValueError(f"Fixed bandwidth must be positive, got {bandwidth}")

    out = _gwr_pass(X_arr, y_arr, D, bandwidth, kernel, adaptive,
                    n_jobs=n_jobs, max_condition=max_condition)

    residuals = y_arr - out['fitted']
    rss = float(residuals @ residuals)
    tr_S = float(out['hat'].sum())
    sigma2 = rss / (n - tr_S) if n > tr_S else np.nan
    se = np.sqrt(out['cc'] * sigma2)
    tss = float(np.sum((y_arr - y_arr.mean()) ** 2))
    r2 = 1 - rss / tss if tss > 0 else np.nan

    ids = coords.index if isinstance(getattr(coords, 'index', None), pd.Index) else pd.RangeIndex(n)

    result = GWRResult(
        params=pd.DataFrame(out['betas'], columns=names, index=ids),
        std_errors=pd.DataFrame(se, columns=names, index=ids),
        fitted=out['fitted'],
        residuals=residuals,
        local_r2=pd.Series(out['local_r2'], index=ids, name='local_r2'),
        local_bandwidths=out['local_bandwidths'],
        bandwidth=float(bandwidth),
        adaptive=adaptive,
        kernel=kernel,
        sigma2=float(sigma2),
        tr_S=tr_S,
        aicc=float(_aicc(rss, n, tr_S)),
        r2=float(r2),
        cv_score=cv_score,
    )

    kind = 'q' if adaptive else 'bw'
    print(f"  ✓ GWR: n={n}, p={p}, {kind}={bandwidth:.4g}, kernel={kernel}, "
          f"R2={r2:.4f}, tr(S)={tr_S:.2f}")

    return result
