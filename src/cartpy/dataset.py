"""Weighted training data as seen by the tree induction core.

Feature values are encoded into a single float matrix: numeric columns keep
their value, nominal columns hold the category index, and ``NaN`` marks a
missing value in both.  Class labels are encoded as indices into
``classes_``.  The core never mutates a :class:`Dataset`; partitioning
produces new weighted subsets.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from .exceptions import DataError


def is_missing_value(v: Any) -> bool:
    if v is None:
        return True
    try:
        return bool(np.isnan(v))
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class Attribute:
    """Descriptor of one input column.

    ``n_categories`` is only meaningful for nominal attributes.
    """

    index: int
    name: str
    nominal: bool = False
    n_categories: int = 0


class Dataset:
    """Ordered weighted instances over a fixed set of attributes."""

    def __init__(self, X: np.ndarray, y: np.ndarray, w: np.ndarray,
                 attributes: Sequence[Attribute], n_classes: int):
        self.X = X
        self.y = y
        self.w = w
        self.attributes = tuple(attributes)
        self.n_classes = int(n_classes)

    def __len__(self) -> int:
        return self.y.shape[0]

    @property
    def total_weight(self) -> float:
        return float(self.w.sum())

    def class_distribution(self) -> np.ndarray:
        return class_distribution(self.y, self.w, self.n_classes)

    def column(self, attr: Attribute) -> np.ndarray:
        return self.X[:, attr.index]

    def subset(self, indices: np.ndarray, weights: np.ndarray | None = None) -> "Dataset":
        """Return a new dataset holding ``indices`` with optional new weights."""
        w = self.w[indices] if weights is None else np.asarray(weights, dtype=float)
        return Dataset(self.X[indices], self.y[indices], w, self.attributes, self.n_classes)


def class_distribution(y: np.ndarray, w: np.ndarray, n_classes: int) -> np.ndarray:
    return np.bincount(y, weights=w, minlength=n_classes).astype(float)


# -----------------------------------------------------------------------------
# Encoding from user arrays
# -----------------------------------------------------------------------------
def sorted_categories(col) -> list:
    values = {v for v in col if not is_missing_value(v)}
    try:
        return sorted(values)
    except TypeError:
        # mixed label types; order by their text
        return sorted(values, key=str)


def encode_column(col, *, nominal: bool, categories: Sequence | None = None,
                  name: str = "?") -> np.ndarray:
    """Encode a raw column into floats, ``NaN`` for missing.

    For nominal columns the value is the category's index in ``categories``;
    values not listed there are treated as missing.
    """
    out = np.full(len(col), np.nan, dtype=float)
    if nominal:
        lookup = {c: i for i, c in enumerate(categories or [])}
        for i, v in enumerate(col):
            if not is_missing_value(v):
                code = lookup.get(v)
                if code is not None:
                    out[i] = code
        return out
    for i, v in enumerate(col):
        if is_missing_value(v):
            continue
        try:
            out[i] = float(v)
        except (TypeError, ValueError) as e:
            raise DataError(
                f"non-numeric value {v!r} in numeric column {name!r} (row {i}); "
                "declare the column in categorical_features") from e
    return out


def encode_features(X: np.ndarray, attributes: Sequence[Attribute],
                    categories: dict[int, list]) -> np.ndarray:
    X = np.asarray(X)
    if X.dtype.kind not in "fiub":
        X = X.astype(object)
    if X.ndim != 2:
        raise DataError(f"X must be two-dimensional, got shape {X.shape}")
    if X.shape[1] != len(attributes):
        raise DataError(
            f"X has {X.shape[1]} features, but the model expects {len(attributes)}")
    if X.dtype.kind in "fiub":
        # fast path for purely numeric input
        Xf = X.astype(float)
        for attr in attributes:
            if attr.nominal:
                Xf[:, attr.index] = encode_column(
                    X[:, attr.index], nominal=True, categories=categories[attr.index])
        return Xf
    cols = [encode_column(X[:, a.index], nominal=a.nominal, categories=categories.get(a.index),
                          name=a.name)
            for a in attributes]
    return np.column_stack(cols) if cols else np.empty((X.shape[0], 0), dtype=float)
