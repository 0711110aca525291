"""
cartpy.selection
================

Cross-validated choice of the pruned tree.

Each fold grows and prunes its own tree on the other folds and records the
holdout misclassification weight of every subtree in its sequence.  The fold
tree used for main position ``k`` is the one at the largest fold alpha not
above the main alpha ``alpha_k``.  The fold trees are scratch state and are
discarded as soon as their errors are known.
"""
from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from sklearn.model_selection import KFold, StratifiedKFold

from .builder import build_tree
from .config import CartConfig
from .dataset import Dataset
from .exceptions import DataError
from .pruning import PruneStep, build_prune_sequence, iter_subtrees

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FoldResult:
    """Alphas of one fold's pruning sequence and the holdout error of each subtree.

    ``errors`` are weighted misclassification counts; ``holdout_weight`` is
    the total weight of the held-out rows.
    """

    alphas: np.ndarray
    errors: np.ndarray
    holdout_weight: float = 1.0


@dataclass(frozen=True)
class Selection:
    index: int
    alpha: float
    cv_errors: np.ndarray


def fold_indices(data: Dataset, n_folds: int, random_state) -> list[tuple[np.ndarray, np.ndarray]]:
    """Shuffled, stratified ``(train, test)`` index pairs.

    Falls back to plain shuffled folds when every class is rarer than the
    number of folds.
    """
    if len(data) < n_folds:
        raise DataError(
            f"cannot run {n_folds}-fold pruning on {len(data)} instances; "
            "lower num_folds_pruning or set prune=False")
    counts = np.bincount(data.y, minlength=data.n_classes)
    counts = counts[counts > 0]
    placeholder = np.zeros(len(data))
    if np.all(counts < n_folds):
        logger.warning("every class has fewer than %d instances; folds are not stratified", n_folds)
        kf = KFold(n_splits=n_folds, shuffle=True, random_state=random_state)
        return list(kf.split(placeholder))
    if counts.min() < n_folds:
        logger.warning("least populated class has %d instances, fewer than %d folds",
                       counts.min(), n_folds)
    skf = StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=random_state)
    with warnings.catch_warnings():
        # the shortfall was logged above
        warnings.simplefilter("ignore", UserWarning)
        return list(skf.split(placeholder, data.y))


def evaluate_fold(train: Dataset, test: Dataset, config: CartConfig) -> FoldResult:
    tree = build_tree(train, config)
    steps = build_prune_sequence(tree)
    errors = np.empty(len(steps), dtype=float)
    for k in iter_subtrees(tree, steps):
        pred = tree.predict(test.X)
        errors[k] = float(test.w[pred != test.y].sum())
    return FoldResult(alphas=np.array([s.alpha for s in steps]), errors=errors,
                      holdout_weight=test.total_weight)


def aligned_errors(steps: Sequence[PruneStep], folds: Sequence[FoldResult]) -> np.ndarray:
    """Holdout errors of each fold at each main position, shape ``(n_folds, n_steps)``.

    For main alpha ``alpha_k`` a fold contributes the subtree at its largest
    alpha ``<= alpha_k``.
    """
    alphas = np.array([s.alpha for s in steps], dtype=float)
    out = np.zeros((len(folds), len(steps)), dtype=float)
    for f, fold in enumerate(folds):
        j = np.searchsorted(fold.alphas, alphas, side="right") - 1
        out[f] = fold.errors[np.maximum(j, 0)]
    return out


def cv_error_curve(steps: Sequence[PruneStep], folds: Sequence[FoldResult],
                   total_weight: float) -> np.ndarray:
    """Cross-validated error rate of each position of the main sequence."""
    return aligned_errors(steps, folds).sum(axis=0) / total_weight


def fold_error_rates(steps: Sequence[PruneStep], folds: Sequence[FoldResult]) -> np.ndarray:
    """Per-fold holdout error rates, shape ``(n_folds, n_steps)``."""
    weights = np.array([f.holdout_weight for f in folds], dtype=float)
    safe = np.where(weights > 0, weights, 1.0)
    return aligned_errors(steps, folds) / safe[:, None]


def choose_index(cv_errors: np.ndarray, use_one_se: bool,
                 fold_rates: np.ndarray | None = None) -> int:
    """Position with minimum error, the smallest tree on ties.

    With ``use_one_se`` the smallest tree whose error is within one standard
    error of the minimum is picked instead.  The standard error is taken
    across folds at the minimum, from ``fold_rates`` (one row per fold).
    """
    best = int(len(cv_errors) - 1 - np.argmin(cv_errors[::-1]))
    if not use_one_se:
        return best
    se = 0.0
    if fold_rates is not None and fold_rates.shape[0] > 1:
        column = fold_rates[:, best]
        se = float(np.std(column, ddof=1) / math.sqrt(column.shape[0]))
    within = np.nonzero(cv_errors <= cv_errors[best] + se)[0]
    return int(within[-1])


def select_pruning(data: Dataset, steps: Sequence[PruneStep], config: CartConfig) -> Selection:
    """Pick the position of ``steps`` (the main tree's sequence) by cross-validation."""
    if len(steps) == 1:
        return Selection(index=0, alpha=steps[0].alpha, cv_errors=np.zeros(1))
    folds = []
    for k, (train_idx, test_idx) in enumerate(
            fold_indices(data, config.num_folds_pruning, config.random_state)):
        fold = evaluate_fold(data.subset(train_idx), data.subset(test_idx), config)
        logger.debug("fold %d: %d subtrees, holdout errors %s", k, len(fold.alphas), fold.errors)
        folds.append(fold)
    cv_errors = cv_error_curve(steps, folds, data.total_weight)
    index = choose_index(cv_errors, config.use_one_se, fold_error_rates(steps, folds))
    return Selection(index=index, alpha=steps[index].alpha, cv_errors=cv_errors)
