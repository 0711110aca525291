import numpy as np
import pytest
from cartpy.config import CartConfig
from cartpy.dataset import Attribute, Dataset
from cartpy.exceptions import DataError
from cartpy.pruning import PruneStep
from cartpy.selection import (FoldResult, aligned_errors, choose_index, cv_error_curve,
                              fold_error_rates, fold_indices, select_pruning)
from cartpy.builder import build_tree
from cartpy.pruning import build_prune_sequence


def _steps(alphas):
    n = len(alphas)
    return [PruneStep(alpha=a, n_leaves=n - k, train_errors=float(k)) for k, a in enumerate(alphas)]


def _data(n=30, seed=0):
    rng = np.random.RandomState(seed)
    X = rng.normal(size=(n, 2))
    y = (X[:, 0] + rng.normal(scale=0.5, size=n) > 0).astype(int)
    return Dataset(X, y, np.ones(n), [Attribute(0, "a"), Attribute(1, "b")], 2)


def test_cv_error_curve_alignment():
    steps = _steps([0.0, 0.1, 0.3])
    folds = [
        FoldResult(alphas=np.array([0.0, 0.05, 0.2]), errors=np.array([1.0, 2.0, 3.0])),
        FoldResult(alphas=np.array([0.0, 0.5]), errors=np.array([0.0, 4.0])),
    ]
    curve = cv_error_curve(steps, folds, total_weight=10.0)
    assert np.allclose(curve, [0.1, 0.2, 0.3])


def test_fold_tree_is_looked_up_at_main_alpha():
    steps = _steps([0.0, 0.1, 0.3])
    fold = FoldResult(alphas=np.array([0.0, 0.15]), errors=np.array([5.0, 1.0]))
    curve = cv_error_curve(steps, [fold], total_weight=10.0)
    # 0.1 is below the fold's second alpha, so the unpruned fold tree is used
    assert np.allclose(curve, [0.5, 0.5, 0.1])


def test_fold_error_rates_use_holdout_weight():
    steps = _steps([0.0, 0.2])
    folds = [
        FoldResult(alphas=np.array([0.0, 0.1]), errors=np.array([1.0, 2.0]), holdout_weight=4.0),
        FoldResult(alphas=np.array([0.0]), errors=np.array([3.0]), holdout_weight=6.0),
    ]
    assert np.allclose(aligned_errors(steps, folds), [[1.0, 2.0], [3.0, 3.0]])
    assert np.allclose(fold_error_rates(steps, folds), [[0.25, 0.5], [0.5, 0.5]])


def test_choose_index_prefers_smaller_tree_on_ties():
    errors = np.array([0.3, 0.2, 0.2, 0.5])
    assert choose_index(errors, use_one_se=False) == 2


def _rates(column):
    rates = np.tile([0.3, 0.2, 0.22, 0.23, 0.5], (len(column), 1))
    rates[:, 1] = column
    return rates


def test_choose_index_one_se_uses_spread_across_folds():
    errors = np.array([0.3, 0.2, 0.22, 0.23, 0.5])
    assert choose_index(errors, use_one_se=False) == 1
    # every fold agrees at the minimum: no standard error to spend, although
    # a binomial error on 100 rows (0.04) would reach position 3
    assert choose_index(errors, use_one_se=True, fold_rates=_rates([0.2, 0.2, 0.2])) == 1
    # std([0.1, 0.2, 0.3], ddof=1) / sqrt(3) = 0.0577
    assert choose_index(errors, use_one_se=True, fold_rates=_rates([0.1, 0.2, 0.3])) == 3
    assert choose_index(errors, use_one_se=True) == 1


def test_fold_indices_partition_rows():
    data = _data()
    folds = fold_indices(data, 5, random_state=1)
    assert len(folds) == 5
    tests = np.concatenate([te for _, te in folds])
    assert sorted(tests.tolist()) == list(range(len(data)))
    for tr, te in folds:
        assert not set(tr) & set(te)
    again = fold_indices(data, 5, random_state=1)
    assert all(np.array_equal(a[1], b[1]) for a, b in zip(folds, again))


def test_fold_indices_too_few_rows():
    with pytest.raises(DataError):
        fold_indices(_data(n=3), 5, random_state=1)


def test_select_pruning_returns_sequence_position():
    data = _data(n=60, seed=2)
    config = CartConfig(min_num_obj=1, num_folds_pruning=3)
    tree = build_tree(data, config)
    steps = build_prune_sequence(tree)
    selection = select_pruning(data, steps, config)
    assert 0 <= selection.index < len(steps)
    assert selection.alpha == steps[selection.index].alpha
    assert len(selection.cv_errors) == len(steps)
    assert np.all((selection.cv_errors >= 0) & (selection.cv_errors <= 1))
    assert selection.cv_errors[selection.index] == selection.cv_errors.min()
