"""
cartpy.pruning
==============

Minimal cost-complexity pruning (Breiman et al., 1984).

For an internal node ``t`` with subtree ``T_t``::

    alpha(t) = (R(t) - R(T_t)) / W / (|leaves(T_t)| - 1)

where ``R(t)`` is the training weight misclassified if ``t`` were a leaf,
``R(T_t)`` the weight misclassified by the leaves of ``T_t`` and ``W`` the
total training weight of the tree.  The weakest link (minimum alpha, first in
pre-order on ties) is collapsed repeatedly until only the root remains.  Each
collapse is logged as a :class:`PruneStep`, which is enough to restore the
full tree and to replay the sequence up to any position.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Sequence

from .builder import NO_CHILD, Tree
from .impurity import SplitCandidate

logger = logging.getLogger(__name__)

ALPHA_DECIMALS = 10


@dataclass(frozen=True)
class Collapse:
    """A node turned into a leaf, with what was detached from it."""

    node: int
    split: SplitCandidate
    left: int
    right: int


@dataclass(frozen=True)
class PruneStep:
    """One tree of the pruning sequence.

    ``alpha`` is the cost-complexity value at which the tree becomes the
    optimal subtree, ``n_leaves`` and ``train_errors`` describe the tree
    obtained after applying ``collapses``.
    """

    alpha: float
    n_leaves: int
    train_errors: float
    collapses: tuple[Collapse, ...] = ()


def compute_alphas(tree: Tree) -> None:
    """Refresh subtree errors and alpha values of every reachable node."""
    order = list(tree.preorder())
    leaves_below: dict[int, int] = {}
    for i in reversed(order):
        node = tree.nodes[i]
        if node.is_leaf:
            node.num_incorrect_in_subtree = node.num_incorrect_at_node
            node.alpha = float("inf")
            leaves_below[i] = 1
            continue
        l, r = tree.nodes[node.left], tree.nodes[node.right]
        node.num_incorrect_in_subtree = l.num_incorrect_in_subtree + r.num_incorrect_in_subtree
        leaves_below[i] = leaves_below[node.left] + leaves_below[node.right]
        diff = (node.num_incorrect_at_node - node.num_incorrect_in_subtree) / tree.train_weight
        node.alpha = round(diff / (leaves_below[i] - 1), ALPHA_DECIMALS)


def collapse(tree: Tree, i: int) -> Collapse:
    node = tree.nodes[i]
    record = Collapse(node=i, split=node.split, left=node.left, right=node.right)
    node.split, node.left, node.right = None, NO_CHILD, NO_CHILD
    node.num_incorrect_in_subtree = node.num_incorrect_at_node
    node.alpha = float("inf")
    return record


def uncollapse(tree: Tree, record: Collapse) -> None:
    node = tree.nodes[record.node]
    node.split, node.left, node.right = record.split, record.left, record.right


def weakest_link(tree: Tree) -> int:
    """Internal node with minimum alpha; the first in pre-order wins ties."""
    best, best_alpha = NO_CHILD, float("inf")
    for i in tree.inner_nodes():
        if tree.nodes[i].alpha < best_alpha or best == NO_CHILD:
            best, best_alpha = i, tree.nodes[i].alpha
    return best


def build_prune_sequence(tree: Tree) -> list[PruneStep]:
    """Prune ``tree`` down to its root and return the sequence of subtrees.

    The first step has alpha ``0`` and removes the splits that do not lower
    the training error; every later step collapses one weakest link.  The
    tree is left as a single leaf; use :func:`prune_to` to bring it back to a
    position of the sequence.
    """
    compute_alphas(tree)
    zero = []
    # collapsing during the walk keeps the detached descendants out of it
    for i in tree.preorder():
        node = tree.nodes[i]
        if not node.is_leaf and node.alpha <= 0.0:
            zero.append(collapse(tree, i))
    compute_alphas(tree)
    steps = [PruneStep(alpha=0.0, n_leaves=tree.n_leaves,
                       train_errors=tree.training_errors(), collapses=tuple(zero))]

    while not tree.nodes[tree.root].is_leaf:
        i = weakest_link(tree)
        # rounding can leave an alpha marginally below its predecessor
        alpha = max(tree.nodes[i].alpha, steps[-1].alpha)
        record = collapse(tree, i)
        compute_alphas(tree)
        steps.append(PruneStep(alpha=alpha, n_leaves=tree.n_leaves,
                               train_errors=tree.training_errors(), collapses=(record,)))
        logger.debug("collapsed node %d at alpha=%.10f -> %d leaves",
                     i, alpha, steps[-1].n_leaves)
    return steps


def restore(tree: Tree, steps: Sequence[PruneStep]) -> None:
    """Undo every collapse of ``steps``, giving back the fully grown tree."""
    for step in reversed(steps):
        for record in reversed(step.collapses):
            uncollapse(tree, record)
    compute_alphas(tree)


def apply_step(tree: Tree, step: PruneStep) -> None:
    for record in step.collapses:
        collapse(tree, record.node)


def prune_to(tree: Tree, steps: Sequence[PruneStep], index: int) -> None:
    """Set ``tree`` to the subtree at position ``index`` of ``steps``."""
    if not 0 <= index < len(steps):
        raise IndexError(f"prune index {index} outside sequence of length {len(steps)}")
    restore(tree, steps)
    for step in steps[: index + 1]:
        apply_step(tree, step)
    compute_alphas(tree)


def iter_subtrees(tree: Tree, steps: Sequence[PruneStep]) -> Iterator[int]:
    """Walk ``tree`` through every subtree of ``steps``, yielding its position."""
    restore(tree, steps)
    for k, step in enumerate(steps):
        apply_step(tree, step)
        yield k
