"""Choice of the split attribute at a node."""
from __future__ import annotations

import logging
from typing import Iterable

from .config import CartConfig
from .dataset import Attribute, Dataset
from .impurity import SplitCandidate, evaluate_attribute, node_impurity

logger = logging.getLogger(__name__)


def best_split(data: Dataset, attributes: Iterable[Attribute],
               config: CartConfig) -> SplitCandidate | None:
    """Return the maximum-gain split over ``attributes`` or ``None``.

    ``None`` means the node should be a leaf: it carries less than
    ``2 * min_num_obj`` weight, it is pure, or no attribute yields a split
    with at least ``min_num_obj`` weight on both sides and a positive gain.
    Ties go to the attribute listed first.
    """
    if data.total_weight < 2 * config.min_num_obj or data.total_weight <= 0:
        return None
    if node_impurity(data) == 0.0:
        return None
    best = None
    for attr in attributes:
        cand = evaluate_attribute(data, attr, config)
        if cand is None:
            continue
        if best is None or cand.gain > best.gain:
            best = cand
    if best is not None:
        logger.debug("split on %s (gain=%.7f, props=%.4f/%.4f)",
                     best.attribute.name, best.gain, *best.props)
    return best
