"""
statistics.py - Distance-based point pattern statistics

Nearest-neighbour distances and the G (nearest-neighbour) and F
(empty-space) distribution functions. Works directly from the pattern
coordinates without requiring a weights graph.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.spatial import KDTree

from strewnfield.data.config import InsufficientDataError
from .pattern import PointPattern


@dataclass(eq=False)
class SummaryFunction:
    """
    Container for a point-process summary function.

    Attributes
    ----------
    r : np.ndarray
        Distance values where the function was evaluated.
    values : np.ndarray
        Function values at each r.
    csr_expected : np.ndarray
        Theoretical values under complete spatial randomness.
    name : str
        'G', 'F', 'K' or 'L'.
    correction : str
        Edge correction used ('none', 'isotropic', 'translation').
    envelope_lo : np.ndarray or None
        Lower simulation envelope (if computed).
    envelope_hi : np.ndarray or None
        Upper simulation envelope (if computed).
    """
    r: np.ndarray
    values: np.ndarray
    csr_expected: np.ndarray
    name: str
    correction: str = 'none'
    envelope_lo: np.ndarray | None = None
    envelope_hi: np.ndarray | None = None

    @property
    def deviation(self) -> np.ndarray:
        """Difference from CSR expectation."""
        return self.values - self.csr_expected

    def pairs(self) -> list[tuple[float, float]]:
        """(r, value) pairs in r order."""
        return list(zip(self.r.tolist(), self.values.tolist()))

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame({
            'r': self.r,
            self.name: self.values,
            'csr': self.csr_expected,
        })
        if self.envelope_lo is not None:
            df['lo'] = self.envelope_lo
            df['hi'] = self.envelope_hi
        return df

    def summary(self) -> dict:
        dev = self.deviation
        return {
            'function': self.name,
            'correction': self.correction,
            'max_r': float(self.r.max()) if len(self.r) else 0.0,
            'n_distances': len(self.r),
            'max_deviation': float(dev.max()) if len(dev) else 0.0,
            'min_deviation': float(dev.min()) if len(dev) else 0.0,
            'has_envelope': self.envelope_lo is not None,
        }

    def __repr__(self) -> str:
        s = self.summary()
        return (
            f"SummaryFunction({s['function']}, correction={s['correction']}, "
            f"max_r={s['max_r']:.4g}, max_dev={s['max_deviation']:.4g})"
        )


def default_r(pattern: PointPattern, n_steps: int = 50,
              max_r: float | None = None) -> np.ndarray:
    """
    Default distance grid: n_steps values in (0, max_r].

    max_r defaults to 25% of the shorter window side (standard rule of
    thumb to avoid severe edge effects).
    """
    if max_r is None:
        max_r = 0.25 * min(pattern.window.width, pattern.window.height)
    return np.linspace(0, max_r, n_steps + 1)[1:]


def _validate_r(r) -> np.ndarray:
    r = np.asarray(r, dtype=np.float64).ravel()
    if len(r) == 0:
        raise ValueError("r must contain at least one distance")
    if np.any(r < 0) or not np.all(np.isfinite(r)):
        raise ValueError("r must be finite and non-negative")
    if np.any(np.diff(r) < 0):
        raise ValueError("r must be sorted in increasing order")
    return r


def _ecdf(samples: np.ndarray, r: np.ndarray) -> np.ndarray:
    """Fraction of samples <= each r."""
    sorted_samples = np.sort(samples)
    return np.searchsorted(sorted_samples, r, side='right') / len(samples)


def _poisson_nn_cdf(pattern: PointPattern, r: np.ndarray) -> np.ndarray:
    """1 - exp(-lambda * pi * r^2): G and F under CSR."""
    return 1.0 - np.exp(-pattern.intensity * np.pi * r ** 2)


def nearest_neighbor_distances(pattern: PointPattern, k: int = 1) -> np.ndarray:
    """
    Compute distance to the k-th nearest neighbour for each point.

    Parameters
    ----------
    pattern : PointPattern
    k : int
        Which nearest neighbour (1 = closest, 2 = second closest, etc.).

    Returns
    -------
    np.ndarray
        One distance per point, in pattern order. Duplicated locations
        give zero distances.
    """
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    if pattern.n <= k:
        raise InsufficientDataError(
            f"k={k} nearest neighbours need more than {k} points, "
            f"pattern has {pattern.n}"
        )

    tree = KDTree(pattern.points)
    # k+1 because the query includes the point itself
    dists, _ = tree.query(pattern.points, k=k + 1)
    return dists[:, k]


def g_function(
    pattern: PointPattern,
    r: np.ndarray | None = None,
    n_steps: int = 50,
) -> SummaryFunction:
    """
    Compute the nearest-neighbour distance distribution G(r).

    G(r) is the fraction of points whose nearest neighbour lies within r.
    Uncorrected empirical CDF: non-decreasing and bounded in [0, 1].

    Parameters
    ----------
    pattern : PointPattern
    r : array-like, optional
        Sorted distances. If None, uses default_r(pattern, n_steps).
    n_steps : int
        Number of distances when r is None.

    Returns
    -------
    SummaryFunction
    """
    r = default_r(pattern, n_steps) if r is None else _validate_r(r)
    nnd = nearest_neighbor_distances(pattern, k=1)
    values = _ecdf(nnd, r)

    print(f"  ✓ G function: n={pattern.n}, max_r={r.max():.4g}, "
          f"G(max_r)={values[-1]:.3f}")

    return SummaryFunction(
        r=r,
        values=values,
        csr_expected=_poisson_nn_cdf(pattern, r),
        name='G',
    )


def f_function(
    pattern: PointPattern,
    r: np.ndarray | None = None,
    n_steps: int = 50,
    n_samples: int = 1000,
    seed: int | None = None,
) -> SummaryFunction:
    """
    Compute the empty-space function F(r).

    F(r) is the fraction of uniformly sampled locations in the window
    (not data points) whose nearest data point lies within r.

    Parameters
    ----------
    pattern : PointPattern
    r : array-like, optional
        Sorted distances. If None, uses default_r(pattern, n_steps).
    n_steps : int
        Number of distances when r is None.
    n_samples : int
        Number of empty-space sample locations.
    seed : int, optional
        Random seed for the sample locations.

    Returns
    -------
    SummaryFunction
    """
    if n_samples < 1:
        raise ValueError(f"n_samples must be >= 1, got {n_samples}")
    r = default_r(pattern, n_steps) if r is None else _validate_r(r)

    rng = np.random.default_rng(seed)
    samples = pattern.window.sample_uniform(n_samples, rng)
    dists, _ = KDTree(pattern.points).query(samples, k=1)
    values = _ecdf(dists, r)

    print(f"  ✓ F function: n={pattern.n}, {n_samples} sample locations, "
          f"F(max_r)={values[-1]:.3f}")

    return SummaryFunction(
        r=r,
        values=values,
        csr_expected=_poisson_nn_cdf(pattern, r),
        name='F',
    )
