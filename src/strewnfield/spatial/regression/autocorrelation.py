"""
autocorrelation.py - Spatial autocorrelation statistics

Global and local Moran's I on values or regression residuals, with
normal-approximation inference, and a Moran correlogram over distance
bands.

Example
-------
>>> graph = spoint.build_knn_weights(table, k=6)
>>> ols = sreg.fit_ols(covariates, response)
>>>
>>> # Are the OLS residuals spatially clustered?
>>> sreg.morans_i(ols.residuals, graph)
>>>
>>> # Where?
>>> lisa = sreg.local_morans_i(ols.residuals, graph)
>>> lisa['spot_type'].value_counts()
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from scipy import stats

from strewnfield.data.config import InsufficientDataError
from strewnfield.spatial.point.graph import SpatialWeightsGraph, build_distance_band_weights


@dataclass(frozen=True)
class MoranResult:
    """
    Result of a global Moran's I test.

    Attributes
    ----------
    I : float
        Moran's I. NaN when undefined (constant values).
    expected : float
        E[I] = -1/(n-1) under no autocorrelation.
    variance : float
        Var[I] under the chosen assumption.
    zscore, pvalue : float
        Normal approximation; p is two-sided.
    n : int
        Observations used (islands excluded when adjust_n=True).
    assumption : str
        'randomization' or 'normality'.
    defined : bool
        False when the values have zero variance.
    p_sim : float or None
        Permutation pseudo p-value when n_permutations > 0.
    """
    I: float
    expected: float
    variance: float
    zscore: float
    pvalue: float
    n: int
    assumption: str
    defined: bool = True
    p_sim: float | None = None
    n_permutations: int = 0

    def as_dict(self) -> dict:
        return {'I': self.I, 'expected': self.expected, 'zscore': self.zscore,
                'pvalue': self.pvalue}

    def __repr__(self) -> str:
        if not self.defined:
            return f"MoranResult (undefined: zero variance, n={self.n})"
        return (
            f"MoranResult (I={self.I:.4f}, E[I]={self.expected:.4f}, "
            f"z={self.zscore:.2f}, p={self.pvalue:.4g})"
        )


# ========== Shared helpers ==========

def _resolve_values(values: Any, graph: SpatialWeightsGraph) -> np.ndarray:
    """1D float array aligned with the graph; missing values are rejected."""
    if isinstance(values, (pd.Series, pd.DataFrame)):
        x = values.to_numpy(dtype=np.float64, na_value=np.nan).ravel()
    else:
        x = np.asarray(values, dtype=np.float64).ravel()
    if len(x) != graph.n:
        raise ValueError(f"Got {len(x)} values for a graph of {graph.n} observations")
    n_missing = int(np.isnan(x).sum())
    if n_missing:
        raise InsufficientDataError(
            f"{n_missing} missing values; Moran's I needs a complete vector"
        )
    return x


def _classify_lisa(
    z: np.ndarray,
    Wz: np.ndarray,
    pvalues: np.ndarray,
    alpha: float = 0.05,
) -> np.ndarray:
    """
    Classify LISA results into spot types.

    HH: high value, high neighbors  → hot cluster
    LL: low value,  low neighbors   → cold cluster
    HL: high value, low neighbors   → high outlier
    LH: low value,  high neighbors  → low outlier
    ns: not significant
    """
    spot_type = np.full(len(z), 'ns', dtype=object)
    sig = np.nan_to_num(pvalues, nan=1.0) < alpha
    spot_type[(z > 0) & (Wz > 0) & sig] = 'HH'
    spot_type[(z < 0) & (Wz < 0) & sig] = 'LL'
    spot_type[(z > 0) & (Wz < 0) & sig] = 'HL'
    spot_type[(z < 0) & (Wz > 0) & sig] = 'LH'
    return spot_type


def _weight_sums(W) -> tuple[float, float, float]:
    """S0, S1, S2 of a sparse weights matrix."""
    S0 = float(W.sum())
    S1 = 0.5 * float((W + W.T).power(2).sum())
    row = np.asarray(W.sum(axis=1)).ravel()
    col = np.asarray(W.sum(axis=0)).ravel()
    S2 = float(np.sum((row + col) ** 2))
    return S0, S1, S2


# ========== morans_i ==========

def morans_i(
    values: Any,
    graph: SpatialWeightsGraph,
    assumption: str = 'randomization',
    adjust_n: bool = True,
    n_permutations: int = 0,
    seed: int | None = None,
) -> MoranResult:
    """
    Compute global Moran's I spatial autocorrelation.

    I = (n / S0) * sum_ij w_ij z_i z_j / sum_i z_i^2, with z = x - mean(x).
    Positive I means clustering, negative dispersion, near E[I]
    randomness.

    Parameters
    ----------
    values : array-like
        Values or residuals, one per graph observation.
    graph : SpatialWeightsGraph
    assumption : str
        'randomization' (default) or 'normality' for Var[I].
    adjust_n : bool
        If True, observations without neighbours are left out entirely:
        they count neither in n nor in the mean and moments of the values.
    n_permutations : int
        If > 0, also compute a permutation pseudo p-value.
    seed : int, optional
        Random seed for permutations.

    Returns
    -------
    MoranResult
        I is NaN with defined=False when all values are identical.
    """
    if assumption not in ('randomization', 'normality'):
        raise ValueError(
            f"Unknown assumption: {assumption}. Use 'randomization' or 'normality'."
        )

    x = _resolve_values(values, graph)
    W = graph.weights
    if adjust_n and len(graph.islands):
        # Islands carry no spatial information: drop them from every moment
        connected = graph.cardinalities > 0
        x = x[connected]
        W = W[connected][:, connected]
    n = len(x)
    if n < 2:
        raise InsufficientDataError(f"Moran's I needs at least 2 connected observations, got {n}")

    S0, S1, S2 = _weight_sums(W)
    if S0 == 0:
        raise InsufficientDataError("Weights graph has no edges")

    z = x - x.mean()
    denom = np.sum(z ** 2)
    expected_I = -1 / (n - 1)

    if denom == 0:
        warnings.warn("All values identical; Moran's I undefined", stacklevel=2)
        return MoranResult(
            I=np.nan, expected=expected_I, variance=np.nan, zscore=np.nan,
            pvalue=np.nan, n=n, assumption=assumption, defined=False,
        )

    observed_I = n * z.dot(W.dot(z)) / (S0 * denom)

    if assumption == 'normality':
        EI2 = (n ** 2 * S1 - n * S2 + 3 * S0 ** 2) / (S0 ** 2 * (n ** 2 - 1))
    else:
        if n < 4:
            raise InsufficientDataError(
                f"Randomization variance needs at least 4 observations, got {n}"
            )
        b2 = n * np.sum(z ** 4) / denom ** 2
        EI2 = (
            n * ((n ** 2 - 3 * n + 3) * S1 - n * S2 + 3 * S0 ** 2)
            - b2 * ((n ** 2 - n) * S1 - 2 * n * S2 + 6 * S0 ** 2)
        ) / ((n - 1) * (n - 2) * (n - 3) * S0 ** 2)
    variance = EI2 - expected_I ** 2

    if variance > 0:
        zscore = (observed_I - expected_I) / np.sqrt(variance)
        pvalue = 2 * stats.norm.sf(abs(zscore))
    else:
        zscore, pvalue = np.nan, np.nan

    p_sim = None
    if n_permutations > 0:
        rng = np.random.default_rng(seed)
        perm_Is = np.empty(n_permutations)
        for i in range(n_permutations):
            z_perm = rng.permutation(z)
            perm_Is[i] = n * z_perm.dot(W.dot(z_perm)) / (S0 * denom)
        perm_mean = perm_Is.mean()
        p_sim = (
            np.sum(np.abs(perm_Is - perm_mean) >= np.abs(observed_I - perm_mean)) + 1
        ) / (n_permutations + 1)
        p_sim = float(p_sim)

    print(f"  ✓ Global Moran's I ({assumption}): "
          f"I={observed_I:.4f}, z={zscore:.2f}, p={pvalue:.4f}")

    return MoranResult(
        I=float(observed_I),
        expected=expected_I,
        variance=float(variance),
        zscore=float(zscore),
        pvalue=float(pvalue),
        n=n,
        assumption=assumption,
        p_sim=p_sim,
        n_permutations=n_permutations,
    )


# ========== local_morans_i ==========

def local_morans_i(
    values: Any,
    graph: SpatialWeightsGraph,
    alpha: float = 0.05,
) -> pd.DataFrame:
    """
    Compute local Moran's I (LISA) per observation.

    I_i = (z_i / m2) * sum_j w_ij z_j with m2 = sum(z^2) / n. Expectation
    and variance follow the randomization assumption (Anselin 1995).

    Parameters
    ----------
    values : array-like
        Values or residuals, one per graph observation.
    graph : SpatialWeightsGraph
    alpha : float
        Significance level for the spot classification.

    Returns
    -------
    pd.DataFrame
        Indexed by graph.ids with columns: local_i, expected, variance,
        zscore, pvalue, lag, spot_type. Islands get local_i = 0, NaN
        inference and spot_type 'island'. attrs['defined'] is False when
        the values are constant.
    """
    x = _resolve_values(values, graph)
    islands = graph.cardinalities == 0
    connected = ~islands
    n = int(connected.sum())
    if n < 3:
        raise InsufficientDataError(
            f"Local Moran's I needs at least 3 connected observations, got {n}"
        )

    # Moments come from connected observations only; islands keep z = 0
    W = graph.weights
    z = np.zeros(graph.n)
    z[connected] = x[connected] - x[connected].mean()
    m2 = np.sum(z ** 2) / n
    Wz = np.asarray(W.dot(z)).ravel()

    if m2 == 0:
        warnings.warn("All values identical; local Moran's I undefined", stacklevel=2)
        result = pd.DataFrame({
            'local_i': np.nan, 'expected': np.nan, 'variance': np.nan,
            'zscore': np.nan, 'pvalue': np.nan, 'lag': Wz,
            'spot_type': np.where(islands, 'island', 'ns'),
        }, index=graph.ids)
        result.attrs['defined'] = False
        return result

    local_i = (z / m2) * Wz

    wi = np.asarray(W.sum(axis=1)).ravel()
    wi2 = np.asarray(W.power(2).sum(axis=1)).ravel()
    b2 = (np.sum(z ** 4) / n) / m2 ** 2

    expected = -wi / (n - 1)
    variance = (
        wi2 * (n - b2) / (n - 1)
        + (wi ** 2 - wi2) * (2 * b2 - n) / ((n - 1) * (n - 2))
        - expected ** 2
    )

    with np.errstate(divide='ignore', invalid='ignore'):
        zscores = np.where(variance > 0, (local_i - expected) / np.sqrt(variance), np.nan)
    pvalues = 2 * stats.norm.sf(np.abs(zscores))

    spot_type = _classify_lisa(z, Wz, pvalues, alpha=alpha)
    spot_type[islands] = 'island'

    result = pd.DataFrame({
        'local_i': local_i,
        'expected': expected,
        'variance': variance,
        'zscore': zscores,
        'pvalue': pvalues,
        'lag': Wz,
        'spot_type': spot_type,
    }, index=graph.ids)
    result.attrs['defined'] = True

    counts = result['spot_type'].value_counts()
    print(f"  ✓ Local Moran's I / LISA: "
          f"HH={counts.get('HH', 0)}, LL={counts.get('LL', 0)}, "
          f"HL={counts.get('HL', 0)}, LH={counts.get('LH', 0)}, "
          f"ns={counts.get('ns', 0)}, islands={counts.get('island', 0)}")

    return result


# ========== moran_correlogram ==========

def moran_correlogram(
    values: Any,
    coords: Any,
    breaks: Any,
    metric: str | None = None,
    crs: str | None = None,
    assumption: str = 'randomization',
) -> pd.DataFrame:
    """
    Moran's I over successive distance bands.

    For each pair of consecutive breaks (d_k, d_k+1) a distance-band
    graph is built and global Moran's I computed. Bands are closed
    intervals, so a pair at exactly a break distance counts in both
    adjacent bands. Bands without any edge give NaN.

    Parameters
    ----------
    values : array-like
    coords : array-like (n, 2), LandingTable or PointPattern
    breaks : array-like
        Increasing band limits (kilometres for 'haversine').
    metric : str, optional
        'euclidean' or 'haversine'. If None, the source table's
        config.distance_metric ('euclidean' for plain arrays).
    crs : str, optional
    assumption : str
        Variance assumption for each band's test.

    Returns
    -------
    pd.DataFrame with columns: d1, d2, mean_neighbors, n_islands, I,
    expected, zscore, pvalue
    """
    breaks = np.asarray(breaks, dtype=np.float64)
    if len(breaks) < 2 or np.any(np.diff(breaks) <= 0):
        raise ValueError("breaks must hold at least 2 strictly increasing distances")

    rows = []
    for d1, d2 in zip(breaks[:-1], breaks[1:]):
        with warnings.catch_warnings():
            # Per-band islands are reported in the n_islands column
            warnings.simplefilter('ignore', UserWarning)
            graph = build_distance_band_weights(coords, d1, d2, metric=metric, crs=crs)
            row = {
                'd1': d1, 'd2': d2,
                'mean_neighbors': float(graph.cardinalities.mean()),
                'n_islands': len(graph.islands),
                'I': np.nan, 'expected': np.nan, 'zscore': np.nan, 'pvalue': np.nan,
            }
            if graph.s0 > 0 and graph.n - len(graph.islands) >= 4:
                res = morans_i(values, graph, assumption=assumption)
                row.update(I=res.I, expected=res.expected,
                           zscore=res.zscore, pvalue=res.pvalue)
        rows.append(row)

    result = pd.DataFrame(rows)
    print(f"  ✓ Moran correlogram: {len(result)} bands, "
          f"{int(result['I'].notna().sum())} with edges")
    return result
