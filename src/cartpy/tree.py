# -*- coding: utf-8 -*-
"""
cartpy.tree
===========

This module implements a CART classification tree (Breiman, Friedman, Olshen
and Stone, 1984).  Splits are binary and chosen by Gini gain over numeric and
categorical predictors.  Missing values are handled with fractional
instances: a training instance whose value on the split attribute is missing
is sent down both branches with its weight scaled by the branch proportions,
and a prediction for such an instance mixes both branches the same way.

The fully grown tree is simplified by minimal cost-complexity pruning; the
pruning level is chosen by N-fold cross-validation, optionally with the
one-standard-error rule.

In addition to the core training and prediction routines, the classifier
provides utilities for rule tracing, rule export, pretty printing of the tree
and Graphviz export.
"""

# -----------------------------------------------------------------------------

from __future__ import annotations

import logging

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.utils import check_random_state
from sklearn.utils.validation import check_is_fitted

from .builder import build_tree, route
from .config import CartConfig
from .dataset import (Attribute, Dataset, encode_features, is_missing_value,
                      sorted_categories)
from .exceptions import DataError
from .pruning import build_prune_sequence, prune_to
from .selection import select_pruning

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Classifier
# -----------------------------------------------------------------------------
class CartClassifier(BaseEstimator, ClassifierMixin):
    """
    CART decision tree classifier with minimal cost-complexity pruning.

    A full binary tree is grown by Gini gain.  When ``prune=True`` the tree
    is then pruned back along its cost-complexity sequence, and the level of
    pruning is selected by ``num_folds_pruning``-fold cross-validation.

    Parameters
    ----------
    min_num_obj : float, default=2.0
        Minimal weighted number of training instances on each side of a
        split.  Nodes carrying less than twice this weight are not split.
    num_folds_pruning : int, default=5
        Number of folds used to choose the pruned tree.  Must be at least 2
        when ``prune=True``.
    prune : bool, default=True
        Whether to apply minimal cost-complexity pruning.  If ``False`` the
        fully grown tree is kept.
    heuristic : bool, default=True
        In multi-class problems, search nominal attributes with more than
        ``max_categories_exhaustive`` categories by ordering the categories
        on the share of the majority class instead of enumerating every
        binary partition.  Two-class problems always use the (optimal)
        ordered search.
    use_one_se : bool, default=False
        Choose the smallest tree whose cross-validated error is within one
        standard error of the minimum.
    size_per : float, default=1.0
        Fraction of the training rows used, in ``(0, 1]``.  Rows are drawn
        at random with ``random_state``.
    random_state : int, default=1
        Seed controlling the ``size_per`` subsample and the fold shuffling.
    feature_names : list[str] or None, default=None
        Optional list of feature names used for rule/graph exports.  If
        ``categorical_features`` are specified by name then ``feature_names``
        must also be provided.
    categorical_features : list[int|str] or None, default=None
        Indices or names of categorical input features.  All other features
        are treated as numeric.
    max_categories_exhaustive : int, default=4
        See ``heuristic``.

    Attributes
    ----------
    tree_ : Tree
        The learned (pruned) tree.
    classes_ : ndarray
        Class labels, sorted.
    categories_ : dict[int, list]
        For every categorical feature, its training categories in code order.
    prune_sequence_ : list[PruneStep]
        Cost-complexity sequence of the main tree; empty if ``prune=False``.
    cv_errors_ : ndarray or None
        Cross-validated error rate of each position of ``prune_sequence_``.
    best_index_ : int or None
        Selected position in ``prune_sequence_``.
    alpha_ : float or None
        Cost-complexity value of the selected tree.

    Notes
    -----
    - The API follows the scikit‑learn estimator conventions for ``fit``,
      ``predict`` and ``predict_proba``.
    - Categories that were not seen during training are treated as missing
      values at prediction time.
    """

    def __init__(
        self,
        *,
        min_num_obj: float = 2.0,
        num_folds_pruning: int = 5,
        prune: bool = True,
        heuristic: bool = True,
        use_one_se: bool = False,
        size_per: float = 1.0,
        random_state: int = 1,
        feature_names: list[str] | None = None,
        categorical_features: list[int | str] | None = None,
        max_categories_exhaustive: int = 4,
    ):
        self.min_num_obj = min_num_obj
        self.num_folds_pruning = num_folds_pruning
        self.prune = prune
        self.heuristic = heuristic
        self.use_one_se = use_one_se
        self.size_per = size_per
        self.random_state = random_state
        self.feature_names = feature_names
        self.categorical_features = categorical_features
        self.max_categories_exhaustive = max_categories_exhaustive

    def fit(self, X, y, sample_weight=None, feature_names=None):
        """
        Build the classifier from the training set ``(X, y)``.

        Rows whose class label is missing are dropped.  Options are validated
        before any training work is done.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Training input.  Missing values may be represented by ``None`` or
            ``numpy.nan``.
        y : array-like of shape (n_samples,)
            Class labels.
        sample_weight : array-like of shape (n_samples,), optional
            Non-negative instance weights.  Defaults to 1 for every row.
        feature_names : list[str], optional
            Names of the input features; overrides the constructor value.

        Returns
        -------
        self

        Raises
        ------
        ConfigurationError
            If an option is out of range.
        DataError
            If no usable training instance remains.
        """
        config = CartConfig.from_estimator(self)
        data = self._prepare_training(X, y, sample_weight, feature_names, config)
        if config.prune and len(data) < config.num_folds_pruning:
            raise DataError(
                f"cannot run {config.num_folds_pruning}-fold pruning on {len(data)} instances; "
                "lower num_folds_pruning or set prune=False")

        tree = build_tree(data, config)
        n_grown = tree.n_leaves
        self.prune_sequence_ = []
        self.cv_errors_ = None
        self.best_index_ = None
        self.alpha_ = None
        if config.prune:
            steps = build_prune_sequence(tree)
            selection = select_pruning(data, steps, config)
            prune_to(tree, steps, selection.index)
            self.prune_sequence_ = steps
            self.cv_errors_ = selection.cv_errors
            self.best_index_ = selection.index
            self.alpha_ = selection.alpha
        self.tree_ = tree
        logger.info("fitted CART tree on %d instances: %d leaves grown, %d kept (alpha=%s)",
                    len(data), n_grown, tree.n_leaves, self.alpha_)
        return self

    def predict(self, X):
        """
        Predict class labels for the provided samples.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input samples.  Missing values may be represented by ``None`` or
            ``numpy.nan``.

        Returns
        -------
        ndarray of shape (n_samples,)
            Predicted class labels.
        """
        proba = self.predict_proba(X)
        return self.classes_[np.argmax(proba, axis=1)]

    def predict_proba(self, X):
        """
        Predict class probabilities for the provided samples.

        Instances reaching a leaf get that leaf's class distribution.  At a
        split whose attribute is missing for the instance (or holds a
        category unseen at that node) both branches are followed and their
        distributions are mixed by the training branch proportions.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input samples.

        Returns
        -------
        ndarray of shape (n_samples, n_classes)
            Predicted class probabilities.
        """
        check_is_fitted(self, "tree_")
        return self.tree_.predict_proba(self._encode(X))

    def predict_rule(self, X, feature_names=None):
        """
        Return the decision rule (antecedent) followed by each input instance.

        Each returned string describes the conjunction of conditions leading
        from the root to the leaf used to predict the class of the instance.
        An instance that has to be split fractionally at a node ends its rule
        with ``<feature> MISSING``.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input samples.
        feature_names : list[str], optional
            Alternative names for the features.

        Returns
        -------
        list[str]
            A list of antecedent strings, one per input sample.
        """
        check_is_fitted(self, "tree_")
        Xe = self._encode(X)
        fn = self._maybe_feature_names(feature_names)
        return [self._trace_rule(x, self.tree_.root, fn) for x in Xe]

    def export_rules(self, *, feature_names=None, class_names=None):
        """
        Export all decision rules in the tree as a list of human‑readable strings.

        Each rule has the form ``<antecedent> => <predicted class>`` where the
        antecedent is a conjunction of conditions from root to leaf.

        Parameters
        ----------
        feature_names : list[str], optional
            Names for the input features.
        class_names : list[str], optional
            Names for the classes, ordered according to ``self.classes_``.

        Returns
        -------
        list[str]
            List of rule strings.
        """
        check_is_fitted(self, "tree_")
        rules: list[str] = []
        fn = self._maybe_feature_names(feature_names)
        self._collect_rules(self.tree_.root, [], rules, fn, class_names)
        return rules

    def export_graphviz(self, filename: str | None = None, *, feature_names=None,
                        class_names=None, format: str = "png") -> str:
        """
        Export the tree structure in Graphviz format.

        Requires the `graphviz` Python package.  When requesting a DOT file
        (``format='dot'``) no external Graphviz binary is needed; the DOT
        source is written directly to disk.  For other formats this method
        attempts to invoke the system ``dot`` command and falls back to
        writing a ``.dot`` file when it is unavailable.

        Parameters
        ----------
        filename : str or None, default=None
            Basename of the output file (the extension is determined by
            ``format``).  If None, the DOT source code is returned as a string
            and no file is written.
        feature_names : list[str], optional
            Custom names for the input features.
        class_names : list[str], optional
            Custom names for the classes, ordered according to
            :attr:`classes_`.
        format : str, default="png"
            Desired output format for Graphviz.

        Returns
        -------
        str
            Path to the written file, or the DOT source code if filename is None.
        """
        check_is_fitted(self, "tree_")
        try:
            import graphviz
        except ImportError as e:
            raise RuntimeError("Graphviz is required for export_graphviz but not installed.") from e
        dot = graphviz.Digraph(format=format)
        fn = self._maybe_feature_names(feature_names)
        self._add_graph_nodes(dot, self.tree_.root, "0", fn, class_names)

        if filename is None:
            return dot.source
        if format.lower() == "dot":
            path = f"{filename}.dot"
            dot.save(path)
            return path
        try:
            dot.render(filename, cleanup=True)
            return f"{filename}.{format}"
        except graphviz.ExecutableNotFound:
            logger.warning("Graphviz 'dot' executable not found; writing %s.dot instead", filename)
            fallback_path = f"{filename}.dot"
            dot.save(fallback_path)
            return fallback_path

    def print_tree(self, feature_names=None, class_names=None):
        """
        Pretty‑print the decision tree to ``stdout``.

        Parameters
        ----------
        feature_names : list[str], optional
            Alternative names for the features.
        class_names : list[str], optional
            Alternative names for the classes, ordered like ``self.classes_``.
        """
        check_is_fitted(self, "tree_")
        fn = self._maybe_feature_names(feature_names)
        self._print_node(self.tree_.root, "", fn, class_names)

    # ------------------------------------------------------------------
    # Tree measures
    # ------------------------------------------------------------------
    def get_n_leaves(self) -> int:
        """Number of leaves of the fitted tree."""
        check_is_fitted(self, "tree_")
        return self.tree_.n_leaves

    def get_depth(self) -> int:
        """Depth of the fitted tree; a single leaf has depth 0."""
        check_is_fitted(self, "tree_")
        return self.tree_.depth

    def cost_complexity_path(self) -> dict:
        """
        The recorded cost-complexity sequence of the main tree.

        Returns
        -------
        dict
            ``alphas``, ``n_leaves``, ``train_errors`` (weighted training
            misclassifications) and ``cv_errors`` (cross-validated error
            rates) as arrays, one entry per subtree from the largest to the
            single leaf.  All arrays are empty when ``prune=False``.
        """
        check_is_fitted(self, "tree_")
        steps = self.prune_sequence_
        return {
            "alphas": np.array([s.alpha for s in steps], dtype=float),
            "n_leaves": np.array([s.n_leaves for s in steps], dtype=int),
            "train_errors": np.array([s.train_errors for s in steps], dtype=float),
            "cv_errors": (np.asarray(self.cv_errors_, dtype=float)
                          if self.cv_errors_ is not None else np.empty(0)),
        }

    # ------------------------------------------------------------------
    # Data preparation
    # ------------------------------------------------------------------
    def _prepare_training(self, X, y, sample_weight, feature_names, config: CartConfig) -> Dataset:
        X = np.asarray(X)
        if X.dtype.kind not in "fiub":
            X = X.astype(object)
        y = np.asarray(y)
        if X.ndim != 2:
            raise DataError(f"X must be two-dimensional, got shape {X.shape}")
        if X.shape[0] != y.shape[0]:
            raise DataError("X and y must have the same number of rows")
        if y.shape[0] == 0:
            raise DataError("cannot fit on an empty dataset")
        if sample_weight is None:
            w = np.ones(len(y), dtype=float)
        else:
            w = np.asarray(sample_weight, dtype=float)
            if len(w) != len(y):
                raise DataError("sample_weight must have the same length as y")
            if np.any(w < 0) or np.any(np.isnan(w)):
                raise DataError("sample_weight must be non-negative")

        keep = np.array([not is_missing_value(v) for v in y], dtype=bool)
        if not keep.all():
            logger.warning("dropping %d rows with a missing class label", int((~keep).sum()))
        X, y, w = X[keep], y[keep], w[keep]
        if y.shape[0] == 0:
            raise DataError("no training instance has a class label")

        n_features = X.shape[1]
        self.n_features_ = n_features
        self.n_features_in_ = n_features
        if feature_names is not None:
            if len(feature_names) != n_features:
                raise DataError("feature_names length must match X.shape[1]")
            self.feature_names_ = list(feature_names)
        elif self.feature_names is not None:
            if len(self.feature_names) != n_features:
                raise DataError("feature_names length must match X.shape[1]")
            self.feature_names_ = list(self.feature_names)
        else:
            self.feature_names_ = [f"f{i}" for i in range(n_features)]

        cats = set()
        if self.categorical_features is not None:
            cf = list(self.categorical_features)
            if len(cf) and isinstance(cf[0], str):
                name_to_idx = {n: i for i, n in enumerate(self.feature_names_)}
                missing = [c for c in cf if c not in name_to_idx]
                if missing:
                    raise DataError(f"unknown categorical features {missing}")
                cf = [name_to_idx[c] for c in cf]
            cats = set(int(i) for i in cf)
        self.is_cat_ = [(i in cats) for i in range(n_features)]

        self.classes_ = np.unique(y)
        idx_map = {c: i for i, c in enumerate(self.classes_)}
        y_idx = np.fromiter((idx_map[c] for c in y), count=y.shape[0], dtype=int)

        self.categories_ = {j: sorted_categories(X[:, j]) for j in range(n_features) if self.is_cat_[j]}
        self.attributes_ = [
            Attribute(index=j, name=self.feature_names_[j], nominal=self.is_cat_[j],
                      n_categories=len(self.categories_.get(j, ())))
            for j in range(n_features)
        ]
        data = Dataset(encode_features(X, self.attributes_, self.categories_), y_idx, w,
                       self.attributes_, len(self.classes_))

        if config.size_per < 1.0:
            rng = check_random_state(config.random_state)
            take = max(1, int(round(config.size_per * len(data))))
            data = data.subset(np.sort(rng.permutation(len(data))[:take]))
        if data.total_weight <= 0:
            raise DataError("total training weight is zero")
        return data

    def _encode(self, X) -> np.ndarray:
        X = np.asarray(X)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        return encode_features(X, self.attributes_, self.categories_)

    # ------------------------------------------------------------------
    # Rule tracing / Graphviz / printing helpers
    # ------------------------------------------------------------------
    def _maybe_feature_names(self, feature_names=None):
        return feature_names if feature_names is not None else self.feature_names_

    def _feature_label(self, j: int, fn) -> str:
        return fn[j] if (fn is not None and 0 <= j < len(fn)) else f"X[{j}]"

    def _class_label(self, k: int, cn) -> str:
        return str(cn[k]) if cn is not None else str(self.classes_[k])

    def _category_set(self, j: int, codes) -> str:
        labels = self.categories_[j]
        return "{" + ", ".join(str(labels[c]) for c in sorted(codes)) + "}"

    def _conditions(self, node, fn) -> tuple[str, str]:
        split = node.split
        name = self._feature_label(split.attribute.index, fn)
        if split.threshold is not None:
            return f"{name} <= {split.threshold:.4f}", f"{name} > {split.threshold:.4f}"
        left = self._category_set(split.attribute.index, split.left_categories)
        right = self._category_set(split.attribute.index, split.right_categories)
        return f"{name} IN {left}", f"{name} IN {right}"

    def _distribution_text(self, node) -> str:
        return str({str(c): round(float(v), 4) for c, v in zip(self.classes_, node.class_distribution)})

    def _trace_rule(self, x, i: int, fn=None, parts=None):
        parts = parts or []
        node = self.tree_.nodes[i]
        if node.is_leaf:
            return " AND ".join(parts) if parts else "<root>"
        side = route(node.split, x[node.split.attribute.index])
        if side is None:
            parts.append(f"{self._feature_label(node.split.attribute.index, fn)} MISSING")
            return " AND ".join(parts)
        left, right = self._conditions(node, fn)
        if side == 0:
            parts.append(left)
            return self._trace_rule(x, node.left, fn, parts)
        parts.append(right)
        return self._trace_rule(x, node.right, fn, parts)

    def _collect_rules(self, i: int, parts, rules, fn, cn):
        node = self.tree_.nodes[i]
        if node.is_leaf:
            body = " AND ".join(parts) if parts else "<root>"
            rules.append(f"{body} => {self._class_label(node.class_value, cn)}")
            return
        left, right = self._conditions(node, fn)
        self._collect_rules(node.left, parts + [left], rules, fn, cn)
        self._collect_rules(node.right, parts + [right], rules, fn, cn)

    def _add_graph_nodes(self, dot, i: int, name: str, fn, cn):
        node = self.tree_.nodes[i]
        if node.is_leaf:
            dot.node(name, f"class={self._class_label(node.class_value, cn)}\n{self._distribution_text(node)}",
                     shape="box", style="filled", color="lightgrey")
            return
        label, _ = self._conditions(node, fn)
        dot.node(name, label, shape="ellipse", style="filled", color="lightblue")
        l_id, r_id = name + "L", name + "R"
        self._add_graph_nodes(dot, node.left, l_id, fn, cn)
        self._add_graph_nodes(dot, node.right, r_id, fn, cn)
        dot.edge(name, l_id, label="True")
        dot.edge(name, r_id, label="False")

    def _print_node(self, i: int, indent="", fn=None, cn=None):
        node = self.tree_.nodes[i]
        if node.is_leaf:
            print(f"{indent}Predict {self._class_label(node.class_value, cn)} | dist={self._distribution_text(node)}")
            return
        left, _ = self._conditions(node, fn)
        print(f"{indent}if {left}:")
        self._print_node(node.left, indent + "  ", fn, cn)
        print(f"{indent}else:")
        self._print_node(node.right, indent + "  ", fn, cn)
