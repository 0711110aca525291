"""
cartpy.impurity
===============

Gini impurity and Gini gain of binary splits on a single attribute.

Instances whose value on the evaluated attribute is missing are left out of
the gain computation.  They are only taken into account once the attribute
has been chosen for a node, when the builder sends them down both branches
with their weight scaled by the branch proportions.

Numeric attributes are split at the midpoint between consecutive distinct
values.  Nominal attributes are split into two groups of categories:

* two-class problems sort the categories by the proportion of the first class
  and only test contiguous prefixes of that ordering, which finds the optimal
  Gini partition in ``O(K log K)``;
* multi-class problems either enumerate all ``2**(K-1) - 1`` partitions, or,
  with the heuristic enabled and many categories, sort the categories by the
  proportion of the node's majority class and test contiguous prefixes.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .dataset import Attribute, Dataset, class_distribution

GAIN_DECIMALS = 7
EXHAUSTIVE_CHUNK_BITS = 16


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def gini(dist: np.ndarray) -> float:
    """Gini impurity ``1 - sum(p_i**2)`` of a weighted class distribution."""
    dist = np.asarray(dist, dtype=float)
    tot = dist.sum()
    if tot <= 0:
        return 0.0
    p = dist / tot
    return float(max(1.0 - np.sum(p * p), 0.0))


def gini_gain(parent: np.ndarray, left: np.ndarray, right: np.ndarray) -> float:
    """Impurity decrease obtained by splitting ``parent`` into ``left``/``right``."""
    wl, wr = float(np.sum(left)), float(np.sum(right))
    tot = wl + wr
    if tot <= 0:
        return 0.0
    return gini(parent) - wl / tot * gini(left) - wr / tot * gini(right)


def _rows_gini(dists: np.ndarray) -> np.ndarray:
    tot = dists.sum(axis=1)
    safe = np.where(tot > 0, tot, 1.0)
    p = dists / safe[:, None]
    return np.where(tot > 0, 1.0 - np.sum(p * p, axis=1), 0.0)


def _best_candidate(lefts: np.ndarray, parent: np.ndarray, min_num_obj: float):
    """Index and gain of the best row of ``lefts``; ``(None, 0.0)`` if none is eligible.

    Each row of ``lefts`` is the class distribution sent left by one
    candidate split, the remainder of ``parent`` goes right.  Candidates
    leaving less than ``min_num_obj`` weight (or no weight at all) on a side
    are skipped.  The first candidate wins ties.
    """
    tot = float(parent.sum())
    if lefts.shape[0] == 0 or tot <= 0:
        return None, 0.0
    rights = parent[None, :] - lefts
    wl = lefts.sum(axis=1)
    wr = rights.sum(axis=1)
    gains = gini(parent) - wl / tot * _rows_gini(lefts) - wr / tot * _rows_gini(rights)
    gains = np.round(gains, GAIN_DECIMALS)
    ok = (wl > 0) & (wr > 0) & (wl >= min_num_obj) & (wr >= min_num_obj)
    if not ok.any():
        return None, 0.0
    gains = np.where(ok, gains, -np.inf)
    i = int(np.argmax(gains))
    return i, float(gains[i])


# -----------------------------------------------------------------------------
# Split descriptor
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class SplitCandidate:
    """Best binary split found on one attribute.

    ``threshold`` is set for numeric attributes (``value <= threshold`` goes
    left); ``left_categories``/``right_categories`` for nominal ones.  A
    category listed in neither set was not observed at the node and is
    routed like a missing value.  ``props`` holds the fraction of the
    non-missing weight sent to each side.
    """

    attribute: Attribute
    gain: float
    props: tuple[float, float]
    threshold: float | None = None
    left_categories: frozenset | None = None
    right_categories: frozenset | None = None

    def goes_left(self, values: np.ndarray) -> np.ndarray:
        if self.threshold is not None:
            return values <= self.threshold
        return np.isin(values, list(self.left_categories))

    def goes_right(self, values: np.ndarray) -> np.ndarray:
        if self.threshold is not None:
            return values > self.threshold
        return np.isin(values, list(self.right_categories))


def _props(wl: float, wr: float) -> tuple[float, float]:
    tot = wl + wr
    pl = wl / tot if tot > 0 else 0.5
    return pl, 1.0 - pl


# -----------------------------------------------------------------------------
# Numeric attributes
# -----------------------------------------------------------------------------
def numeric_split(attr: Attribute, values: np.ndarray, y: np.ndarray, w: np.ndarray,
                  n_classes: int, min_num_obj: float) -> SplitCandidate | None:
    known = ~np.isnan(values)
    v, yk, wk = values[known], y[known], w[known]
    if v.size <= 1:
        return None
    order = np.argsort(v, kind="mergesort")
    v, yk, wk = v[order], yk[order], wk[order]
    bd = np.nonzero(v[:-1] != v[1:])[0]
    if bd.size == 0:
        return None

    M = np.zeros((v.shape[0], n_classes), dtype=float)
    M[np.arange(v.shape[0]), yk] = wk
    SW = M.cumsum(axis=0)
    parent = SW[-1]

    i, gain = _best_candidate(SW[bd], parent, min_num_obj)
    if i is None or gain <= 0:
        return None
    b = bd[i]
    wl = float(SW[b].sum())
    return SplitCandidate(
        attribute=attr, gain=gain, props=_props(wl, float(parent.sum()) - wl),
        threshold=float(0.5 * (v[b] + v[b + 1])))


# -----------------------------------------------------------------------------
# Nominal attributes
# -----------------------------------------------------------------------------
def _ordered_search(dists: np.ndarray, key: np.ndarray, parent: np.ndarray, min_num_obj: float):
    order = np.argsort(key, kind="mergesort")
    lefts = np.cumsum(dists[order], axis=0)[:-1]
    i, gain = _best_candidate(lefts, parent, min_num_obj)
    if i is None:
        return None, gain
    return order[: i + 1], gain


def _exhaustive_search(dists: np.ndarray, parent: np.ndarray, min_num_obj: float):
    # The last category always stays on the right, so every unordered
    # partition into two non-empty groups is visited exactly once.  Masks
    # are enumerated in increasing order, one block of low bits at a time;
    # the high bits of a block are fixed and kept as a Python int.
    k = dists.shape[0] - 1
    low = min(k, EXHAUSTIVE_CHUNK_BITS)
    low_bits = ((np.arange(2 ** low)[:, None] >> np.arange(low)[None, :]) & 1).astype(bool)
    low_lefts = low_bits.astype(float) @ dists[:low]
    best, best_gain = None, -np.inf
    for high in range(2 ** (k - low)):
        high_idx = [low + j for j in range(k - low) if (high >> j) & 1]
        lefts = low_lefts + dists[high_idx].sum(axis=0)
        # mask 0 sends nothing left
        start = 1 if high == 0 else 0
        i, gain = _best_candidate(lefts[start:], parent, min_num_obj)
        if i is not None and gain > best_gain:
            best = list(np.nonzero(low_bits[start + i])[0]) + high_idx
            best_gain = gain
    if best is None:
        return None, 0.0
    return np.array(best, dtype=int), best_gain


def nominal_split(attr: Attribute, values: np.ndarray, y: np.ndarray, w: np.ndarray,
                  n_classes: int, min_num_obj: float, *, heuristic: bool = True,
                  max_categories_exhaustive: int = 4,
                  search: str = "auto") -> SplitCandidate | None:
    """Best partition of the categories present at the node into two groups.

    ``search`` forces a strategy: ``"exhaustive"`` enumerates every
    partition, ``"ordered"`` tests contiguous prefixes of the class-skew
    ordering.  ``"auto"`` uses the ordered search for two classes, or for
    multi-class problems with ``heuristic`` set and more than
    ``max_categories_exhaustive`` categories present, and the exhaustive
    search otherwise.
    """
    known = ~np.isnan(values)
    if not known.any():
        return None
    codes = values[known].astype(int)
    yk, wk = y[known], w[known]
    present, inverse = np.unique(codes, return_inverse=True)
    dists = np.zeros((present.shape[0], n_classes), dtype=float)
    np.add.at(dists, (inverse, yk), wk)
    nonempty = dists.sum(axis=1) > 0
    present, dists = present[nonempty], dists[nonempty]
    if present.shape[0] < 2:
        return None
    parent = dists.sum(axis=0)

    if search == "auto":
        many = present.shape[0] > max_categories_exhaustive
        search = "ordered" if (n_classes == 2 or (heuristic and many)) else "exhaustive"
    if search == "ordered":
        # class-skew statistic: share of the first class for two-class
        # problems, of the node's majority class otherwise
        c = 0 if n_classes == 2 else int(np.argmax(parent))
        key = dists[:, c] / dists.sum(axis=1)
        left_idx, gain = _ordered_search(dists, key, parent, min_num_obj)
    elif search == "exhaustive":
        left_idx, gain = _exhaustive_search(dists, parent, min_num_obj)
    else:
        raise ValueError(f"unknown search strategy {search!r}")

    if left_idx is None or gain <= 0:
        return None
    in_left = np.zeros(present.shape[0], dtype=bool)
    in_left[left_idx] = True
    wl = float(dists[in_left].sum())
    return SplitCandidate(
        attribute=attr, gain=gain, props=_props(wl, float(parent.sum()) - wl),
        left_categories=frozenset(int(c) for c in present[in_left]),
        right_categories=frozenset(int(c) for c in present[~in_left]))


def evaluate_attribute(data: Dataset, attr: Attribute, config) -> SplitCandidate | None:
    """Best split of ``data`` on ``attr``, or ``None`` if the attribute cannot split it."""
    values = data.column(attr)
    if attr.nominal:
        return nominal_split(attr, values, data.y, data.w, data.n_classes, config.min_num_obj,
                             heuristic=config.heuristic,
                             max_categories_exhaustive=config.max_categories_exhaustive)
    return numeric_split(attr, values, data.y, data.w, data.n_classes, config.min_num_obj)


def node_impurity(data: Dataset) -> float:
    return gini(class_distribution(data.y, data.w, data.n_classes))
