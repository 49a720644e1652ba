"""
ripley.py - Ripley's K and L functions

Classic second-order point process statistics for clustering and
dispersion at multiple spatial scales, with edge correction and
Monte Carlo simulation envelopes.
"""

from __future__ import annotations

import numpy as np
from scipy.spatial import KDTree

from strewnfield.data.config import InsufficientDataError
from .pattern import PointPattern, Window
from .statistics import (
    SummaryFunction,
    _ecdf,
    _validate_r,
    default_r,
    f_function,
    g_function,
)

CORRECTIONS = ("isotropic", "translation", "none")


def ripleys_k(
    pattern: PointPattern,
    r: np.ndarray | None = None,
    n_steps: int = 50,
    correction: str = "isotropic",
) -> SummaryFunction:
    """
    Compute Ripley's K function.

    K(r) is the expected number of additional points within distance r
    of a typical point, divided by the intensity. Compares to the CSR
    expectation pi*r^2.

    Parameters
    ----------
    pattern : PointPattern
    r : array-like, optional
        Sorted distances. If None, uses default_r(pattern, n_steps).
    n_steps : int
        Number of distance values when r is None.
    correction : str
        Edge correction: 'isotropic' (Ripley), 'translation' or 'none'.

    Returns
    -------
    SummaryFunction
        K function values and CSR expectation.
    """
    r = default_r(pattern, n_steps) if r is None else _validate_r(r)
    K_values = _k_from_coords(pattern.points, pattern.window, r, correction)

    print(f"  ✓ Ripley's K: n={pattern.n}, max_r={r.max():.4g}, " f"correction={correction}")

    return SummaryFunction(
        r=r,
        values=K_values,
        csr_expected=np.pi * r**2,
        name="K",
        correction=correction,
    )


def ripleys_l(
    pattern: PointPattern,
    r: np.ndarray | None = None,
    n_steps: int = 50,
    correction: str = "isotropic",
) -> SummaryFunction:
    """
    Compute Ripley's L function (variance-stabilized K).

    L(r) = sqrt(K(r)/pi). Under CSR, L(r) = r. Above the diagonal means
    clustering, below means dispersion.

    Parameters
    ----------
    pattern : PointPattern
    r : array-like, optional
        Sorted distances.
    n_steps : int
        Number of distance values when r is None.
    correction : str
        Edge correction method.

    Returns
    -------
    SummaryFunction
        L function values (CSR expectation = r).
    """
    k_result = ripleys_k(pattern, r=r, n_steps=n_steps, correction=correction)

    L_values = np.sqrt(k_result.values / np.pi)

    print(f"  ✓ Ripley's L: max |L - r| = {np.max(np.abs(L_values - k_result.r)):.4g}")

    return SummaryFunction(
        r=k_result.r,
        values=L_values,
        csr_expected=k_result.r.copy(),
        name="L",
        correction=correction,
    )


def _k_from_coords(
    coords: np.ndarray,
    window: Window,
    r_values: np.ndarray,
    correction: str,
) -> np.ndarray:
    """
    Compute K(r) directly from a coordinate array.

    All pairs up to max(r) are collected once; each r is then a
    cumulative sum over pairs sorted by distance.
    """
    if correction not in CORRECTIONS:
        raise ValueError(f"Unknown correction: {correction}. Use one of {CORRECTIONS}.")

    n = len(coords)
    if n < 2:
        raise InsufficientDataError(f"Ripley's K needs at least 2 points, got {n}")

    area = window.area
    tree = KDTree(coords)
    pairs = tree.query_pairs(r_values.max(), output_type="ndarray")

    if len(pairs) == 0:
        return np.zeros(len(r_values))

    i, j = pairs[:, 0], pairs[:, 1]
    delta = coords[i] - coords[j]
    d = np.hypot(delta[:, 0], delta[:, 1])

    # Weight per unordered pair = sum of both ordered contributions
    if correction == "isotropic":
        w = 1.0 / _isotropic_fraction(coords[i], d, window) + 1.0 / _isotropic_fraction(coords[j], d, window)
    elif correction == "translation":
        overlap = (window.width - np.abs(delta[:, 0])) * (window.height - np.abs(delta[:, 1]))
        overlap = np.maximum(overlap, 1e-12 * area)
        w = 2.0 * area / overlap
    else:
        w = np.full(len(d), 2.0)

    order = np.argsort(d)
    cum_w = np.concatenate([[0.0], np.cumsum(w[order])])
    counts = np.searchsorted(d[order], r_values, side="right")

    return area * cum_w[counts] / (n * (n - 1))


def _isotropic_fraction(
    points: np.ndarray,
    d: np.ndarray,
    window: Window,
) -> np.ndarray:
    """
    Ripley isotropic edge correction weight.

    Exact fraction of the circumference of the circle centred at each
    point with radius d that lies inside the rectangular window.

    The circle leaves the window through at most four arcs, one per
    edge, each centred on that edge's normal with half-angle
    arccos(e/d) <= pi/2 (e = distance to the edge). Opposite arcs never
    overlap and adjacent arcs overlap by max(0, h1 + h2 - pi/2), so the
    outside angle is the sum of arc lengths minus adjacent overlaps.

    Returns
    -------
    np.ndarray
        Weights in (0, 1]. 1.0 = entire circle inside the window.
    """
    e = window.boundary_distances(points)  # left, right, bottom, top
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(d[:, None] > 0, e / d[:, None], np.inf)
    h = np.where(ratio < 1, np.arccos(np.clip(ratio, -1, 1)), 0.0)

    left, right, bottom, top = h[:, 0], h[:, 1], h[:, 2], h[:, 3]
    outside = 2 * h.sum(axis=1)
    for a, b in ((right, top), (top, left), (left, bottom), (bottom, right)):
        outside -= np.maximum(0.0, a + b - np.pi / 2)

    fraction_inside = 1.0 - outside / (2 * np.pi)
    return np.maximum(fraction_inside, 0.01)  # floor to avoid division by ~0


def simulation_envelope(
    pattern: PointPattern,
    function: str = "L",
    r: np.ndarray | None = None,
    n_steps: int = 50,
    n_simulations: int = 99,
    confidence: float = 0.95,
    correction: str = "isotropic",
    n_samples: int = 1000,
    seed: int | None = None,
) -> SummaryFunction:
    """
    Compute simulation envelopes for significance testing.

    Simulates complete spatial randomness (the same number of uniform
    points in the same window) and takes pointwise percentiles of the
    simulated curves. The observed curve is significant at distance r if
    it falls outside the envelope at that r.

    Parameters
    ----------
    pattern : PointPattern
    function : str
        'G', 'F', 'K' or 'L'.
    r : array-like, optional
        Sorted distances.
    n_steps : int
        Number of distance values when r is None.
    n_simulations : int
        Number of simulated patterns.
    confidence : float
        Confidence level for envelope (e.g., 0.95 = 95%).
    correction : str
        Edge correction for K and L.
    n_samples : int
        Empty-space sample locations for F.
    seed : int, optional
        Random seed.

    Returns
    -------
    SummaryFunction
        Observed statistic with envelope_lo and envelope_hi filled.
    """
    if function not in ("G", "F", "K", "L"):
        raise ValueError(f"Unknown function: {function}. Use 'G', 'F', 'K' or 'L'.")
    if n_simulations < 1:
        raise ValueError(f"n_simulations must be >= 1, got {n_simulations}")

    rng = np.random.default_rng(seed)
    r = default_r(pattern, n_steps) if r is None else _validate_r(r)

    # Step 1: Compute observed
    if function == "G":
        observed = g_function(pattern, r=r)
    elif function == "F":
        observed = f_function(pattern, r=r, n_samples=n_samples, seed=rng.integers(2**32))
    elif function == "K":
        observed = ripleys_k(pattern, r=r, correction=correction)
    else:
        observed = ripleys_l(pattern, r=r, correction=correction)

    # Step 2: Simulate
    print(f"  Running {n_simulations} simulations for envelope...")
    sim_stats = np.zeros((n_simulations, len(r)))
    window = pattern.window

    for s in range(n_simulations):
        rand_coords = window.sample_uniform(pattern.n, rng)

        if function == "G":
            dists, _ = KDTree(rand_coords).query(rand_coords, k=2)
            sim_stats[s] = _ecdf(dists[:, 1], r)
        elif function == "F":
            samples = window.sample_uniform(n_samples, rng)
            dists, _ = KDTree(rand_coords).query(samples, k=1)
            sim_stats[s] = _ecdf(dists, r)
        else:
            sim_k = _k_from_coords(rand_coords, window, r, correction)
            sim_stats[s] = np.sqrt(sim_k / np.pi) if function == "L" else sim_k

    # Step 3: Build envelope
    alpha = 1 - confidence
    envelope_lo = np.percentile(sim_stats, (alpha / 2) * 100, axis=0)
    envelope_hi = np.percentile(sim_stats, (1 - alpha / 2) * 100, axis=0)

    above = int(np.sum(observed.values > envelope_hi))
    below = int(np.sum(observed.values < envelope_lo))
    print(
        f"  ✓ Envelope ({confidence:.0%}): " f"{above} distances above, {below} below, " f"{len(r) - above - below} inside"
    )

    observed.envelope_lo = envelope_lo
    observed.envelope_hi = envelope_hi

    return observed
