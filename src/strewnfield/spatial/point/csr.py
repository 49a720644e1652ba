"""
csr.py - Tests of complete spatial randomness

Quadrat counts (chi-squared goodness of fit) and a Monte Carlo test of
the mean nearest-neighbour distance against a fitted homogeneous
Poisson process.
"""
from __future__ import annotations

import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np
from scipy import stats
from scipy.spatial import KDTree

from strewnfield.data.config import InsufficientDataError
from .pattern import PointPattern, Window
from .statistics import nearest_neighbor_distances


@dataclass(frozen=True, eq=False)
class QuadratTestResult:
    """
    Result of a quadrat count test.

    Attributes
    ----------
    statistic : float
        Pearson chi-squared statistic.
    pvalue : float
        Upper-tail chi-squared p-value.
    df : int
        Degrees of freedom (nx * ny - 1).
    counts : np.ndarray
        (ny, nx) observed counts; row 0 is the bottom row.
    expected : float
        Expected count per cell under uniform intensity.
    reliable : bool
        False when the expected count is below the usability threshold;
        the chi-squared approximation is then unreliable.
    """
    statistic: float
    pvalue: float
    df: int
    counts: np.ndarray
    expected: float
    nx: int
    ny: int
    reliable: bool = True

    def __repr__(self) -> str:
        flag = '' if self.reliable else ', UNRELIABLE'
        return (
            f"QuadratTestResult (X2={self.statistic:.4g}, df={self.df}, "
            f"p={self.pvalue:.4g}{flag})"
        )


@dataclass(frozen=True, eq=False)
class ANNTestResult:
    """
    Result of the Monte Carlo average nearest-neighbour test.

    Attributes
    ----------
    observed : float
        Mean k-th nearest-neighbour distance of the pattern.
    simulated : np.ndarray
        Mean k-th nearest-neighbour distance of each replicate, in
        replicate order.
    expected : float
        Mean of the simulated distribution.
    sd : float
        Standard deviation of the simulated distribution.
    zscore : float
    pvalue : float
        Two-sided normal p-value, 2 * Phi(-|z|).
    """
    observed: float
    simulated: np.ndarray
    expected: float
    sd: float
    zscore: float
    pvalue: float
    k: int
    n_simulations: int

    @property
    def ratio(self) -> float:
        """Nearest-neighbour index: < 1 clustered, > 1 dispersed."""
        return self.observed / self.expected

    def __repr__(self) -> str:
        return (
            f"ANNTestResult (observed={self.observed:.4g}, "
            f"expected={self.expected:.4g}, z={self.zscore:.2f}, "
            f"p={self.pvalue:.4g}, N={self.n_simulations})"
        )


def quadrat_test(
    pattern: PointPattern,
    nx: int = 5,
    ny: int = 5,
    min_expected: float = 5.0,
    strict: bool = False,
) -> QuadratTestResult:
    """
    Chi-squared quadrat test of uniform intensity.

    Partitions the window into nx x ny equal cells, counts points per
    cell and compares against the expected count n / (nx * ny).

    Parameters
    ----------
    pattern : PointPattern
    nx, ny : int
        Number of quadrats along x and y.
    min_expected : float
        Usability threshold for the expected cell count.
    strict : bool
        If True, an expected count below min_expected raises
        InsufficientDataError. If False, the result is returned with
        reliable=False and a warning is emitted.

    Returns
    -------
    QuadratTestResult
    """
    if nx < 1 or ny < 1:
        raise ValueError(f"nx and ny must be >= 1, got nx={nx}, ny={ny}")
    n_cells = nx * ny
    if n_cells < 2:
        raise ValueError("Quadrat test needs at least 2 cells")

    window = pattern.window
    x_edges = np.linspace(window.xmin, window.xmax, nx + 1)
    y_edges = np.linspace(window.ymin, window.ymax, ny + 1)
    # histogram2d bins the last edge inclusively
    counts, _, _ = np.histogram2d(pattern.y, pattern.x, bins=[y_edges, x_edges])

    expected = pattern.n / n_cells
    reliable = expected >= min_expected
    if not reliable:
        msg = (
            f"Expected quadrat count {expected:.3g} < {min_expected} "
            f"(n={pattern.n}, nx={nx}, ny={ny}); use a coarser grid"
        )
        if strict:
            raise InsufficientDataError(msg)
        warnings.warn(msg + "; chi-squared p-value is unreliable", stacklevel=2)

    statistic = float(np.sum((counts - expected) ** 2) / expected)
    df = n_cells - 1
    pvalue = float(stats.chi2.sf(statistic, df))

    print(f"  ✓ Quadrat test ({nx}x{ny}): X2={statistic:.3f}, df={df}, "
          f"p={pvalue:.4f}{'' if reliable else ' (unreliable)'}")

    return QuadratTestResult(
        statistic=statistic,
        pvalue=pvalue,
        df=df,
        counts=counts.astype(int),
        expected=expected,
        nx=nx,
        ny=ny,
        reliable=reliable,
    )


def _simulate_mean_nnd(
    window: Window,
    expected_n: float,
    k: int,
    seed: np.random.SeedSequence,
) -> float:
    """Mean k-NN distance of one homogeneous Poisson replicate."""
    rng = np.random.default_rng(seed)
    # Replicates with <= k points have no k-th neighbour; redraw them
    count = rng.poisson(expected_n)
    while count <= k:
        count = rng.poisson(expected_n)
    coords = window.sample_uniform(count, rng)
    dists, _ = KDTree(coords).query(coords, k=k + 1)
    return float(dists[:, k].mean())


def ann_test(
    pattern: PointPattern,
    k: int = 1,
    n_simulations: int = 99,
    seed: int | None = None,
    n_jobs: int = 1,
) -> ANNTestResult:
    """
    Monte Carlo test of the mean k-th nearest-neighbour distance.

    Fits a homogeneous Poisson process with the observed intensity,
    simulates `n_simulations` patterns in the same window (Poisson
    number of points with mean n), and compares the observed mean
    distance to the simulated distribution via a z-score built from the
    simulated mean and standard deviation.

    Parameters
    ----------
    pattern : PointPattern
    k : int
        Neighbour order.
    n_simulations : int
        Number of replicates. Trades test resolution against compute.
    seed : int, optional
        Random seed. Each replicate gets its own child seed, so results
        do not depend on n_jobs.
    n_jobs : int
        Worker threads for the replicates.

    Returns
    -------
    ANNTestResult
    """
    if n_simulations < 2:
        raise ValueError(f"n_simulations must be >= 2, got {n_simulations}")
    if n_jobs < 1:
        raise ValueError(f"n_jobs must be >= 1, got {n_jobs}")

    observed = float(nearest_neighbor_distances(pattern, k=k).mean())
    expected_n = pattern.intensity * pattern.area

    child_seeds = np.random.SeedSequence(seed).spawn(n_simulations)

    print(f"  Running {n_simulations} Poisson simulations...")
    simulated = np.empty(n_simulations)
    if n_jobs == 1:
        for s, child in enumerate(child_seeds):
            simulated[s] = _simulate_mean_nnd(pattern.window, expected_n, k, child)
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            futures = {
                pool.submit(_simulate_mean_nnd, pattern.window, expected_n, k, child): s
                for s, child in enumerate(child_seeds)
            }
            for future, s in futures.items():
                simulated[s] = future.result()

    sim_mean = float(simulated.mean())
    sim_sd = float(simulated.std(ddof=1))
    zscore = (observed - sim_mean) / sim_sd if sim_sd > 0 else 0.0
    pvalue = float(2 * stats.norm.cdf(-abs(zscore)))

    sig = "significant" if pvalue < 0.05 else "not significant"
    print(f"  ✓ ANN test (k={k}): observed={observed:.4g}, expected={sim_mean:.4g}")
    print(f"    z={zscore:.2f}, p={pvalue:.4f} ({sig})")

    return ANNTestResult(
        observed=observed,
        simulated=simulated,
        expected=sim_mean,
        sd=sim_sd,
        zscore=float(zscore),
        pvalue=pvalue,
        k=k,
        n_simulations=n_simulations,
    )
