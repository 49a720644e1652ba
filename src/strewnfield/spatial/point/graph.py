"""
graph.py - Spatial weights graphs from point coordinates

Builds row-standardised neighbour graphs (k-nearest neighbours or a
distance band). These graphs are the input to Moran's I, local Moran's I,
spatial lags and correlograms.
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from scipy import sparse
from sklearn.neighbors import BallTree

from strewnfield.data.config import InsufficientDataError
from strewnfield.spatial.shared.utils import (
    EARTH_RADIUS_KM,
    resolve_coords,
    resolve_metric,
    to_radians_latlon,
    validate_metric,
)


@dataclass(eq=False)
class SpatialWeightsGraph:
    """
    Container for a row-standardised spatial weights graph.

    Attributes
    ----------
    weights : sparse.csr_matrix
        (n x n) weights; each non-empty row sums to 1. Directed: j being
        a neighbour of i does not imply the reverse.
    distances : sparse.csr_matrix
        Edge distances (same sparsity as weights).
    ids : pd.Index
        Observation ids matching matrix rows/columns.
    method : str
        Construction method ('knn', 'distance_band').
    params : dict
        Parameters used (e.g., {'k': 6}).
    metric : str
        'euclidean' (coordinate units) or 'haversine' (kilometres).
    crs : str or None
        CRS tag of the coordinates the graph was built from.
    """
    weights: sparse.csr_matrix
    distances: sparse.csr_matrix
    ids: pd.Index
    method: str
    params: dict
    metric: str = 'euclidean'
    crs: str | None = None

    @property
    def n(self) -> int:
        return self.weights.shape[0]

    @property
    def n_edges(self) -> int:
        """Directed edge count."""
        return self.weights.nnz

    @property
    def cardinalities(self) -> np.ndarray:
        """Neighbour count per observation."""
        return np.diff(self.weights.indptr)

    @property
    def islands(self) -> np.ndarray:
        """Indices of observations with no neighbours."""
        return np.flatnonzero(self.cardinalities == 0)

    @property
    def s0(self) -> float:
        """Sum of all weights."""
        return float(self.weights.sum())

    def neighbors(self, i: int) -> np.ndarray:
        """Neighbour indices of observation i, ascending."""
        start, end = self.weights.indptr[i], self.weights.indptr[i + 1]
        return np.sort(self.weights.indices[start:end])

    def neighbor_weights(self, i: int) -> pd.Series:
        """Weights of observation i's outgoing edges, indexed by neighbour index."""
        row = self.weights.getrow(i)
        order = np.argsort(row.indices)
        return pd.Series(row.data[order], index=row.indices[order], name='weight')

    def to_dict(self) -> dict[int, tuple[np.ndarray, np.ndarray]]:
        """Map each index to (neighbour indices, weights)."""
        out = {}
        for i in range(self.n):
            w = self.neighbor_weights(i)
            out[i] = (w.index.to_numpy(), w.to_numpy())
        return out

    def summary(self) -> dict:
        card = self.cardinalities
        dists = self.distances.data
        return {
            'method': self.method,
            'params': self.params,
            'metric': self.metric,
            'crs': self.crs,
            'n': self.n,
            'n_edges': self.n_edges,
            'mean_neighbors': float(card.mean()) if self.n else 0.0,
            'min_neighbors': int(card.min()) if self.n else 0,
            'max_neighbors': int(card.max()) if self.n else 0,
            'n_islands': len(self.islands),
            'mean_edge_distance': float(dists.mean()) if len(dists) > 0 else 0.0,
            'max_edge_distance': float(dists.max()) if len(dists) > 0 else 0.0,
        }

    def __repr__(self) -> str:
        s = self.summary()
        return (
            f"SpatialWeightsGraph (method={s['method']}, "
            f"{s['n']} observations, {s['n_edges']} edges, "
            f"mean neighbours={s['mean_neighbors']:.1f}, islands={s['n_islands']})"
        )


def _row_normalize(W: sparse.spmatrix) -> sparse.csr_matrix:
    """Row-normalize a sparse weight matrix; empty rows stay empty."""
    W = W.astype(np.float64).tocsr()
    row_sums = np.array(W.sum(axis=1)).flatten()
    row_sums[row_sums == 0] = 1  # avoid division by zero
    diag_inv = sparse.diags(1.0 / row_sums)
    return sparse.csr_matrix(diag_inv.dot(W))


def _build_tree(coords: np.ndarray, metric: str) -> tuple[BallTree, np.ndarray, float]:
    """Build a BallTree; returns (tree, query coords, distance scale)."""
    if metric == 'haversine':
        query = to_radians_latlon(coords)
        scale = EARTH_RADIUS_KM
    else:
        query = coords
        scale = 1.0
    return BallTree(query, metric=metric), query, scale


def _resolve_ids(source: Any, n: int, ids: Any) -> pd.Index:
    if ids is not None:
        ids = pd.Index(ids)
    elif hasattr(source, 'index') and isinstance(getattr(source, 'index'), pd.Index):
        ids = source.index
    else:
        ids = pd.RangeIndex(n)
    if len(ids) != n:
        raise ValueError(f"Got {len(ids)} ids for {n} observations")
    return ids


def _graph_from_lists(
    neighbor_lists: list[np.ndarray],
    distance_lists: list[np.ndarray],
    n: int,
) -> tuple[sparse.csr_matrix, sparse.csr_matrix]:
    counts = np.array([len(nb) for nb in neighbor_lists], dtype=int)
    rows = np.repeat(np.arange(n), counts)
    cols = np.concatenate(neighbor_lists) if n else np.array([], dtype=int)
    dists = np.concatenate(distance_lists) if n else np.array([])

    binary = sparse.csr_matrix(
        (np.ones(len(rows)), (rows, cols)), shape=(n, n)
    )
    dist_sparse = sparse.csr_matrix((dists, (rows, cols)), shape=(n, n))
    return _row_normalize(binary), dist_sparse


def build_knn_weights(
    coords: Any,
    k: int = 6,
    metric: str | None = None,
    crs: str | None = None,
    ids: Any = None,
    tie_decimals: int = 10,
) -> SpatialWeightsGraph:
    """
    Build a k-nearest neighbours weights graph.

    Each observation connects to its k closest other observations with
    weight 1/k. Equal distances are broken by ascending original index.
    The graph is not symmetrised.

    Parameters
    ----------
    coords : array-like (n, 2), LandingTable or PointPattern
        Coordinates (lon/lat degrees for metric='haversine').
    k : int
        Number of neighbours.
    metric : str, optional
        'euclidean' or 'haversine'. If None, the source table's
        config.distance_metric ('euclidean' for plain arrays).
    crs : str, optional
        CRS tag of coords; checked against the source's tag and the metric.
    ids : array-like, optional
        Observation ids. Defaults to the source's index or 0..n-1.
    tie_decimals : int
        Distances are rounded to this many decimals before tie-breaking.

    Returns
    -------
    SpatialWeightsGraph

    Raises
    ------
    InsufficientDataError
        If there are n <= k observations.
    """
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    points, crs = resolve_coords(coords, crs, context='build_knn_weights')
    metric = resolve_metric(metric, coords)
    validate_metric(metric, crs)
    n = len(points)
    if n <= k:
        raise InsufficientDataError(
            f"k={k} nearest neighbours need more than {k} observations, got {n}"
        )

    tree, query, scale = _build_tree(points, metric)
    # k+1 because the query includes the point itself
    knn_dists, _ = tree.query(query, k=k + 1)
    kth = knn_dists[:, k]

    # Every candidate tied with the k-th distance, then sort by (distance, index)
    radius_idx, radius_dists = tree.query_radius(
        query, r=kth * (1 + 1e-9) + 1e-12, return_distance=True
    )

    neighbor_lists = []
    distance_lists = []
    for i in range(n):
        cand = radius_idx[i]
        cand_d = radius_dists[i]
        keep = (cand != i) & (cand_d <= kth[i] * (1 + 1e-9) + 1e-12)
        cand, cand_d = cand[keep], cand_d[keep]
        order = np.lexsort((cand, np.round(cand_d, tie_decimals)))[:k]
        neighbor_lists.append(cand[order])
        distance_lists.append(cand_d[order] * scale)

    weights, dist_sparse = _graph_from_lists(neighbor_lists, distance_lists, n)

    print(f"  ✓ KNN weights: k={k}, metric={metric}, {weights.nnz} edges")

    return SpatialWeightsGraph(
        weights=weights,
        distances=dist_sparse,
        ids=_resolve_ids(coords, n, ids),
        method='knn',
        params={'k': k},
        metric=metric,
        crs=crs,
    )


def build_distance_band_weights(
    coords: Any,
    d1: float,
    d2: float,
    metric: str | None = None,
    crs: str | None = None,
    ids: Any = None,
) -> SpatialWeightsGraph:
    """
    Build a distance-band weights graph.

    Connects each observation to every other observation whose distance
    lies in the closed interval [d1, d2], with weight 1/(neighbour count).
    Observations with no neighbours keep an empty row (zero policy): they
    add nothing to autocorrelation statistics instead of aborting the
    analysis.

    Parameters
    ----------
    coords : array-like (n, 2), LandingTable or PointPattern
    d1, d2 : float
        Lower and upper distance bounds (kilometres for 'haversine').
    metric : str, optional
        'euclidean' or 'haversine'. If None, the source table's
        config.distance_metric ('euclidean' for plain arrays).
    crs : str, optional
        CRS tag of coords.
    ids : array-like, optional
        Observation ids.

    Returns
    -------
    SpatialWeightsGraph
    """
    if d1 < 0 or d2 < d1:
        raise ValueError(f"Need 0 <= d1 <= d2, got d1={d1}, d2={d2}")
    points, crs = resolve_coords(coords, crs, context='build_distance_band_weights')
    metric = resolve_metric(metric, coords)
    validate_metric(metric, crs)
    n = len(points)
    if n < 2:
        raise InsufficientDataError(f"Distance-band weights need at least 2 observations, got {n}")

    tree, query, scale = _build_tree(points, metric)
    radius_idx, radius_dists = tree.query_radius(
        query, r=d2 / scale * (1 + 1e-12), return_distance=True
    )

    neighbor_lists = []
    distance_lists = []
    for i in range(n):
        cand = radius_idx[i]
        cand_d = radius_dists[i] * scale
        keep = (cand != i) & (cand_d >= d1 * (1 - 1e-12)) & (cand_d <= d2 * (1 + 1e-12))
        order = np.argsort(cand[keep])
        neighbor_lists.append(cand[keep][order])
        distance_lists.append(cand_d[keep][order])

    weights, dist_sparse = _graph_from_lists(neighbor_lists, distance_lists, n)

    graph = SpatialWeightsGraph(
        weights=weights,
        distances=dist_sparse,
        ids=_resolve_ids(coords, n, ids),
        method='distance_band',
        params={'d1': d1, 'd2': d2},
        metric=metric,
        crs=crs,
    )

    n_islands = len(graph.islands)
    if n_islands > 0:
        warnings.warn(
            f"{n_islands} of {n} observations have no neighbours in "
            f"[{d1}, {d2}]; they keep empty weight rows",
            stacklevel=2,
        )

    print(f"  ✓ Distance-band weights: [{d1}, {d2}], metric={metric}, "
          f"{weights.nnz} edges, mean neighbours={graph.cardinalities.mean():.1f}")

    return graph


def spatial_lag(graph: SpatialWeightsGraph, values: Any) -> np.ndarray:
    """
    Compute the spatial lag (weighted average of neighbours' values).

    Islands get a lag of 0.
    """
    x = np.asarray(values, dtype=np.float64).ravel()
    if len(x) != graph.n:
        raise ValueError(f"Got {len(x)} values for a graph of {graph.n} observations")
    return np.asarray(graph.weights.dot(x)).ravel()
