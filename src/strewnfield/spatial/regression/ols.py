"""
ols.py - Ordinary least squares

Global regression of a response on covariates (e.g. landing counts or
masses on gravity and solar irradiance). The residuals feed Moran's I;
the coefficients are the baseline GWR is compared against.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from scipy import linalg, stats

from strewnfield.data.config import CollinearityError, InsufficientDataError


@dataclass(frozen=True, eq=False)
class OLSResult:
    """
    Container for an OLS fit.

    Attributes
    ----------
    coefficients : pd.Series
        Estimates indexed by term ('intercept' first when fitted).
    std_errors : pd.Series
    tvalues : pd.Series
    pvalues : pd.Series
        Two-sided t-test p-values.
    fitted : np.ndarray
    residuals : np.ndarray
    r2, adj_r2 : float
    sigma2 : float
        Residual variance RSS / (n - p).
    aic : float
        Gaussian log-likelihood AIC with p + 1 parameters.
    """
    coefficients: pd.Series
    std_errors: pd.Series
    tvalues: pd.Series
    pvalues: pd.Series
    fitted: np.ndarray
    residuals: np.ndarray
    r2: float
    adj_r2: float
    sigma2: float
    aic: float
    n: int

    @property
    def p(self) -> int:
        return len(self.coefficients)

    @property
    def rss(self) -> float:
        return float(np.sum(self.residuals ** 2))

    def summary(self) -> pd.DataFrame:
        return pd.DataFrame({
            'estimate': self.coefficients,
            'std_error': self.std_errors,
            't': self.tvalues,
            'p': self.pvalues,
        })

    def __repr__(self) -> str:
        terms = ', '.join(f"{k}={v:.4g}" for k, v in self.coefficients.items())
        return f"OLSResult (n={self.n}, R2={self.r2:.3f}; {terms})"


def prepare_design(
    X: Any,
    y: Any,
    add_intercept: bool = True,
) -> tuple[np.ndarray, np.ndarray, list[str]]:
    """
    Convert covariates and response to float arrays.

    Missing values (NaN or pd.NA) are not imputed: any left over raise
    InsufficientDataError naming the affected columns.

    Returns
    -------
    X : np.ndarray (n, p)
    y : np.ndarray (n,)
    names : list of str
        Term names, 'intercept' first when added.
    """
    if isinstance(X, pd.Series):
        X = X.to_frame()
    if isinstance(X, pd.DataFrame):
        names = [str(c) for c in X.columns]
        X_arr = X.to_numpy(dtype=np.float64, na_value=np.nan)
    else:
        X_arr = np.asarray(X, dtype=np.float64)
        if X_arr.ndim == 1:
            X_arr = X_arr[:, None]
        names = [f"x{i}" for i in range(X_arr.shape[1])]

    if isinstance(y, (pd.Series, pd.DataFrame)):
        y_arr = y.to_numpy(dtype=np.float64, na_value=np.nan).ravel()
    else:
        y_arr = np.asarray(y, dtype=np.float64).ravel()

    if len(y_arr) != len(X_arr):
        raise ValueError(f"X has {len(X_arr)} rows but y has {len(y_arr)}")

    missing = {name: int(np.isnan(X_arr[:, j]).sum()) for j, name in enumerate(names)}
    missing['response'] = int(np.isnan(y_arr).sum())
    missing = {name: count for name, count in missing.items() if count > 0}
    if missing:
        raise InsufficientDataError(
            f"Missing values in regression inputs {missing}; "
            "drop or impute them explicitly before fitting"
        )

    if add_intercept:
        X_arr = np.column_stack([np.ones(len(X_arr)), X_arr])
        names = ['intercept'] + names

    return X_arr, y_arr, names


def fit_ols(
    X: Any,
    y: Any,
    add_intercept: bool = True,
) -> OLSResult:
    """
    Fit ordinary least squares via QR decomposition.

    Parameters
    ----------
    X : pd.DataFrame, pd.Series or array-like (n, p)
        Covariates.
    y : array-like (n,)
        Response.
    add_intercept : bool
        If True, prepend a column of ones.

    Returns
    -------
    OLSResult

    Raises
    ------
    CollinearityError
        If the design matrix is not of full column rank.
    InsufficientDataError
        If inputs have missing values or n <= p.
    """
    X_arr, y_arr, names = prepare_design(X, y, add_intercept=add_intercept)
    n, p = X_arr.shape

    if n <= p:
        raise InsufficientDataError(
            f"OLS with {p} terms needs more than {p} observations, got {n}"
        )

    rank = np.linalg.matrix_rank(X_arr)
    if rank < p:
        raise CollinearityError(rank, p, names)

    Q, R = np.linalg.qr(X_arr)
    beta = linalg.solve_triangular(R, Q.T @ y_arr)

    fitted = X_arr @ beta
    residuals = y_arr - fitted
    rss = float(residuals @ residuals)
    df_resid = n - p
    sigma2 = rss / df_resid

    R_inv = linalg.solve_triangular(R, np.eye(p))
    cov = sigma2 * (R_inv @ R_inv.T)
    se = np.sqrt(np.diag(cov))
    with np.errstate(divide='ignore', invalid='ignore'):
        tvalues = beta / se
    pvalues = 2 * stats.t.sf(np.abs(tvalues), df_resid)

    tss = float(np.sum((y_arr - y_arr.mean()) ** 2))
    r2 = 1 - rss / tss if tss > 0 else np.nan
    adj_r2 = 1 - (1 - r2) * (n - 1) / df_resid if tss > 0 else np.nan

    # Gaussian log-likelihood at the ML variance rss / n
    log_lik = -0.5 * n * (np.log(2 * np.pi) + np.log(max(rss / n, 1e-300)) + 1)
    aic = 2 * (p + 1) - 2 * log_lik

    print(f"  ✓ OLS: n={n}, p={p}, R2={r2:.4f}, sigma2={sigma2:.4g}")

    return OLSResult(
        coefficients=pd.Series(beta, index=names, name='estimate'),
        std_errors=pd.Series(se, index=names, name='std_error'),
        tvalues=pd.Series(tvalues, index=names, name='t'),
        pvalues=pd.Series(pvalues, index=names, name='p'),
        fitted=fitted,
        residuals=residuals,
        r2=float(r2),
        adj_r2=float(adj_r2),
        sigma2=float(sigma2),
        aic=float(aic),
        n=n,
    )
