"""
cartpy.builder
==============

Tree storage and recursive growth.

A :class:`Tree` is an arena of :class:`TreeNode` objects addressed by their
position in ``Tree.nodes``; children are referenced by index.  Nodes are
appended in pre-order, so index order is also the pre-order visiting order
of the fully grown tree.  A node is a leaf exactly when it carries no split;
pruning collapses a node by detaching its split and children, which the
pruner records so the collapse can be undone.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator

import numpy as np

from .config import CartConfig
from .dataset import Dataset
from .impurity import SplitCandidate
from .split import best_split

logger = logging.getLogger(__name__)

NO_CHILD = -1


# -----------------------------------------------------------------------------
# Node
# -----------------------------------------------------------------------------
@dataclass
class TreeNode:
    """One node of the tree.

    Attributes
    ----------
    class_distribution : ndarray of shape (n_classes,)
        Weighted class counts of the training instances reaching the node,
        fractional copies of missing-valued instances included.
    class_value : int
        Index of the majority class; the prediction when the node is a leaf.
    split : SplitCandidate or None
        Split descriptor for internal nodes, ``None`` for leaves.
    left, right : int
        Child indices in the owning :class:`Tree`, ``-1`` for leaves.
    num_incorrect_at_node : float
        Training weight misclassified if the node were a leaf.
    num_incorrect_in_subtree : float
        Training weight misclassified by the leaves below the node.
    alpha : float
        Cost-complexity value; ``inf`` for leaves.
    """

    class_distribution: np.ndarray
    class_value: int
    depth: int = 0
    split: SplitCandidate | None = None
    left: int = NO_CHILD
    right: int = NO_CHILD
    num_incorrect_at_node: float = 0.0
    num_incorrect_in_subtree: float = 0.0
    alpha: float = float("inf")

    @property
    def is_leaf(self) -> bool:
        return self.split is None

    @property
    def weight(self) -> float:
        return float(self.class_distribution.sum())

    @property
    def props(self) -> tuple[float, float]:
        return self.split.props if self.split is not None else (1.0, 0.0)

    def probabilities(self) -> np.ndarray:
        tot = self.class_distribution.sum()
        if tot <= 0:
            return np.full(self.class_distribution.shape[0], 1.0 / self.class_distribution.shape[0])
        return self.class_distribution / tot


# -----------------------------------------------------------------------------
# Tree
# -----------------------------------------------------------------------------
@dataclass
class Tree:
    """Binary classification tree stored as an arena of nodes.

    ``train_weight`` is the total training weight at the root; the pruner
    normalises cost-complexity values by it.
    """

    n_classes: int
    train_weight: float
    nodes: list[TreeNode] = field(default_factory=list)
    root: int = 0

    def add(self, node: TreeNode) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def preorder(self, start: int | None = None) -> Iterator[int]:
        """Indices of the nodes currently reachable from ``start``, in pre-order."""
        stack = [self.root if start is None else start]
        while stack:
            i = stack.pop()
            yield i
            node = self.nodes[i]
            if not node.is_leaf:
                stack.append(node.right)
                stack.append(node.left)

    def inner_nodes(self) -> list[int]:
        return [i for i in self.preorder() if not self.nodes[i].is_leaf]

    def leaves(self, start: int | None = None) -> list[int]:
        return [i for i in self.preorder(start) if self.nodes[i].is_leaf]

    @property
    def node_count(self) -> int:
        return sum(1 for _ in self.preorder())

    @property
    def n_leaves(self) -> int:
        return len(self.leaves())

    @property
    def depth(self) -> int:
        return max(self.nodes[i].depth for i in self.preorder()) - self.nodes[self.root].depth

    def training_errors(self) -> float:
        """Weighted training misclassifications of the current leaves."""
        return float(sum(self.nodes[i].num_incorrect_at_node for i in self.leaves()))

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------
    def distribution_for_row(self, x: np.ndarray) -> np.ndarray:
        """Class probabilities for one encoded row.

        A row whose value on a split attribute is missing, or is a category
        not seen at that node during training, is sent down both branches
        and the two distributions are mixed by the node's branch proportions.
        """
        return self._distribution(x, self.root)

    def _distribution(self, x: np.ndarray, i: int) -> np.ndarray:
        node = self.nodes[i]
        if node.is_leaf:
            return node.probabilities()
        side = route(node.split, x[node.split.attribute.index])
        if side == 0:
            return self._distribution(x, node.left)
        if side == 1:
            return self._distribution(x, node.right)
        pl, pr = node.split.props
        return pl * self._distribution(x, node.left) + pr * self._distribution(x, node.right)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        if X.shape[0] == 0:
            return np.empty((0, self.n_classes), dtype=float)
        return np.array([self.distribution_for_row(x) for x in X])

    def predict(self, X: np.ndarray) -> np.ndarray:
        return np.argmax(self.predict_proba(X), axis=1)


def route(split: SplitCandidate, value: float) -> int | None:
    """``0`` for left, ``1`` for right, ``None`` when the value must be split fractionally."""
    if np.isnan(value):
        return None
    if split.threshold is not None:
        return 0 if value <= split.threshold else 1
    code = int(value)
    if code in split.left_categories:
        return 0
    if code in split.right_categories:
        return 1
    return None


# -----------------------------------------------------------------------------
# Growth
# -----------------------------------------------------------------------------
def partition(data: Dataset, split: SplitCandidate) -> tuple[Dataset, Dataset]:
    """Split ``data`` into the left and right child datasets.

    Instances that cannot be routed (missing value, unseen category) are
    copied into both children with their weight scaled by ``split.props``.
    """
    values = data.column(split.attribute)
    left_mask = split.goes_left(values)
    right_mask = split.goes_right(values)
    miss = ~(left_mask | right_mask)
    pl, pr = split.props

    left_idx = np.nonzero(left_mask | miss)[0]
    right_idx = np.nonzero(right_mask | miss)[0]
    w_left = data.w[left_idx] * np.where(miss[left_idx], pl, 1.0)
    w_right = data.w[right_idx] * np.where(miss[right_idx], pr, 1.0)
    return data.subset(left_idx, w_left), data.subset(right_idx, w_right)


def build_tree(data: Dataset, config: CartConfig) -> Tree:
    """Grow a full tree on ``data``.

    A node becomes a leaf when it carries less than ``2 * min_num_obj``
    weight, when it is pure, or when no attribute yields an eligible split.
    """
    tree = Tree(n_classes=data.n_classes, train_weight=data.total_weight)
    _grow(tree, data, config, depth=0)
    logger.debug("grew tree: %d nodes, %d leaves on %d instances",
                 tree.node_count, tree.n_leaves, len(data))
    return tree


def _grow(tree: Tree, data: Dataset, config: CartConfig, depth: int) -> int:
    dist = data.class_distribution()
    node = TreeNode(class_distribution=dist, class_value=int(np.argmax(dist)), depth=depth,
                    num_incorrect_at_node=float(dist.sum() - dist.max()))
    idx = tree.add(node)

    split = best_split(data, data.attributes, config)
    if split is None:
        return idx
    left, right = partition(data, split)
    node.split = split
    node.left = _grow(tree, left, config, depth + 1)
    node.right = _grow(tree, right, config, depth + 1)
    return idx
