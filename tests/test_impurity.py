import numpy as np
import pytest
from cartpy.config import CartConfig
from cartpy import impurity
from cartpy.dataset import Attribute, Dataset
from cartpy.impurity import gini, gini_gain, nominal_split, numeric_split
from cartpy.split import best_split


def _nominal_data(seed, n_classes=2, max_k=10, n=40):
    rng = np.random.RandomState(seed)
    k = rng.randint(2, max_k + 1)
    codes = rng.randint(0, k, size=n).astype(float)
    y = rng.randint(0, n_classes, size=n)
    w = rng.uniform(0.5, 2.0, size=n)
    return Attribute(0, "c", nominal=True, n_categories=k), codes, y, w


@pytest.mark.parametrize("seed", range(10))
def test_gini_bounds(seed):
    rng = np.random.RandomState(seed)
    k = rng.randint(2, 6)
    dist = rng.uniform(0.0, 5.0, size=k)
    g = gini(dist)
    assert 0.0 <= g <= 1.0 - 1.0 / k + 1e-12
    assert g > 0.0


def test_gini_pure_and_uniform():
    assert gini([0.0, 7.5, 0.0]) == 0.0
    assert gini([0.0, 0.0]) == 0.0
    assert gini([2.0, 2.0, 2.0, 2.0]) == pytest.approx(0.75)


@pytest.mark.parametrize("seed", range(10))
def test_gain_non_negative(seed):
    rng = np.random.RandomState(seed)
    parent_y = rng.randint(0, 3, size=30)
    w = rng.uniform(0.1, 3.0, size=30)
    mask = rng.rand(30) < 0.5
    left = np.bincount(parent_y[mask], weights=w[mask], minlength=3)
    right = np.bincount(parent_y[~mask], weights=w[~mask], minlength=3)
    assert gini_gain(left + right, left, right) >= -1e-12
    # nothing sent to one side: no gain
    assert gini_gain(left + right, left + right, np.zeros(3)) == pytest.approx(0.0)


def test_numeric_split_midpoint_and_first_tie():
    attr = Attribute(0, "x")
    values = np.array([1.0, 2.0, 3.0, 4.0])
    y = np.array([0, 1, 0, 1])
    # 1.5 and 3.5 both give a gain of 1/6; the first one wins
    cand = numeric_split(attr, values, y, np.ones(4), 2, 0.0)
    assert cand.threshold == 1.5
    assert cand.gain == pytest.approx(1 / 6, abs=1e-6)
    assert cand.props == pytest.approx((1 / 4, 3 / 4))


def test_numeric_split_ignores_missing():
    attr = Attribute(0, "x")
    values = np.array([1.0, 2.0, np.nan, 8.0, 9.0, np.nan])
    y = np.array([0, 0, 1, 1, 1, 0])
    cand = numeric_split(attr, values, y, np.ones(6), 2, 0.0)
    assert cand.threshold == 5.0
    assert cand.gain == pytest.approx(0.5)
    assert cand.props == pytest.approx((0.5, 0.5))


def test_numeric_split_degenerate_columns():
    attr = Attribute(0, "x")
    y = np.array([0, 1, 0, 1])
    assert numeric_split(attr, np.full(4, np.nan), y, np.ones(4), 2, 0.0) is None
    assert numeric_split(attr, np.full(4, 3.0), y, np.ones(4), 2, 0.0) is None


def test_numeric_split_respects_min_num_obj():
    attr = Attribute(0, "x")
    values = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
    y = np.array([1, 0, 0, 0, 0])
    assert numeric_split(attr, values, y, np.ones(5), 2, 1.0).threshold == 1.5
    cand = numeric_split(attr, values, y, np.ones(5), 2, 2.0)
    assert cand is None or cand.threshold >= 2.5


def test_nominal_single_category_is_not_split():
    attr = Attribute(0, "c", nominal=True, n_categories=3)
    values = np.array([1.0, 1.0, np.nan, 1.0])
    y = np.array([0, 1, 0, 1])
    assert nominal_split(attr, values, y, np.ones(4), 2, 0.0) is None


@pytest.mark.parametrize("seed", range(25))
def test_two_class_ordered_search_is_optimal(seed):
    attr, codes, y, w = _nominal_data(seed)
    fast = nominal_split(attr, codes, y, w, 2, 0.0, search="auto")
    exact = nominal_split(attr, codes, y, w, 2, 0.0, search="exhaustive")
    if exact is None:
        assert fast is None
    else:
        assert fast is not None
        assert fast.gain == pytest.approx(exact.gain, abs=1e-6)


@pytest.mark.parametrize("seed", range(10))
def test_multiclass_heuristic_never_beats_exhaustive(seed):
    attr, codes, y, w = _nominal_data(seed, n_classes=3, max_k=9, n=60)
    heur = nominal_split(attr, codes, y, w, 3, 0.0, heuristic=True, max_categories_exhaustive=2)
    exact = nominal_split(attr, codes, y, w, 3, 0.0, heuristic=False)
    forced = nominal_split(attr, codes, y, w, 3, 0.0, search="exhaustive")
    if exact is not None:
        assert forced.gain == exact.gain
        assert heur is None or heur.gain <= exact.gain + 1e-9


def test_nominal_partition_covers_present_categories():
    attr = Attribute(0, "c", nominal=True, n_categories=5)
    values = np.array([0, 0, 1, 1, 3, 3, np.nan], dtype=float)
    y = np.array([0, 0, 1, 1, 2, 2, 0])
    cand = nominal_split(attr, values, y, np.ones(7), 3, 0.0, heuristic=False)
    assert cand.left_categories | cand.right_categories == {0, 1, 3}
    assert not (cand.left_categories & cand.right_categories)
    # category 2 and 4 never appear at the node
    assert 2 not in cand.left_categories | cand.right_categories


def _dataset(X, y, nominal=()):
    X = np.asarray(X, dtype=float)
    attrs = [Attribute(j, f"x{j}", nominal=j in nominal, n_categories=3 if j in nominal else 0)
             for j in range(X.shape[1])]
    y = np.asarray(y)
    return Dataset(X, y, np.ones(len(y)), attrs, int(y.max()) + 1)


def test_best_split_ties_go_to_first_attribute():
    data = _dataset([[1, 1], [2, 2], [3, 3], [4, 4]], [0, 0, 1, 1])
    split = best_split(data, data.attributes, CartConfig(min_num_obj=1))
    assert split.attribute.index == 0


def test_best_split_picks_max_gain():
    data = _dataset([[1, 0], [2, 1], [3, 0], [4, 1]], [0, 1, 0, 1])
    split = best_split(data, data.attributes, CartConfig(min_num_obj=1))
    assert split.attribute.index == 1
    assert split.gain == pytest.approx(0.5)


def test_best_split_none_when_pure_or_light():
    pure = _dataset([[1, 1], [2, 2], [3, 3], [4, 4]], [1, 1, 1, 1])
    assert best_split(pure, pure.attributes, CartConfig(min_num_obj=1)) is None
    light = _dataset([[1, 1], [2, 2], [3, 3]], [0, 1, 1])
    assert best_split(light, light.attributes, CartConfig(min_num_obj=2)) is None


@pytest.mark.parametrize("seed", range(8))
def test_exhaustive_search_same_result_across_blocks(seed, monkeypatch):
    attr, codes, y, w = _nominal_data(seed, n_classes=3, max_k=9, n=60)
    whole = nominal_split(attr, codes, y, w, 3, 0.0, search="exhaustive")
    monkeypatch.setattr(impurity, "EXHAUSTIVE_CHUNK_BITS", 2)
    blocked = nominal_split(attr, codes, y, w, 3, 0.0, search="exhaustive")
    if whole is None:
        assert blocked is None
    else:
        assert blocked.gain == pytest.approx(whole.gain)
        assert blocked.left_categories == whole.left_categories


def test_exhaustive_search_with_many_categories():
    # 20 categories: the winning partition needs bits beyond the first block
    k = 20
    attr = Attribute(0, "c", nominal=True, n_categories=k)
    codes = np.arange(k, dtype=float)
    y = np.zeros(k, dtype=int)
    y[17], y[19] = 1, 2
    cand = nominal_split(attr, codes, y, np.ones(k), 3, 0.0, heuristic=False)
    assert {cand.left_categories, cand.right_categories} == {
        frozenset({17, 19}), frozenset(set(range(k)) - {17, 19})}
    assert cand.gain == pytest.approx(0.135, abs=1e-6)
