"""Immutable run configuration shared by the builder, pruner and selector."""
from __future__ import annotations

from dataclasses import dataclass

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class CartConfig:
    """Options controlling tree growth, pruning and fold selection.

    Parameters
    ----------
    min_num_obj : float, default=2.0
        Minimum weighted number of instances on each side of a split.
    num_folds_pruning : int, default=5
        Number of cross-validation folds used to choose the pruned tree.
    prune : bool, default=True
        Whether minimal cost-complexity pruning is applied.
    heuristic : bool, default=True
        Use the ordered (contiguous prefix) search for nominal attributes with
        many categories in multi-class problems instead of enumerating every
        binary partition.
    use_one_se : bool, default=False
        Pick the smallest tree within one standard error of the best
        cross-validated error.
    size_per : float, default=1.0
        Fraction of the training rows actually used, in ``(0, 1]``.
    random_state : int, default=1
        Seed for the ``size_per`` subsample and the fold shuffling.
    max_categories_exhaustive : int, default=4
        In multi-class problems with ``heuristic=True``, nominal attributes
        with more categories present at a node than this are searched
        heuristically.
    """

    min_num_obj: float = 2.0
    num_folds_pruning: int = 5
    prune: bool = True
    heuristic: bool = True
    use_one_se: bool = False
    size_per: float = 1.0
    random_state: int = 1
    max_categories_exhaustive: int = 4

    @classmethod
    def from_estimator(cls, est) -> "CartConfig":
        cfg = cls(
            min_num_obj=float(est.min_num_obj),
            num_folds_pruning=int(est.num_folds_pruning),
            prune=bool(est.prune),
            heuristic=bool(est.heuristic),
            use_one_se=bool(est.use_one_se),
            size_per=float(est.size_per),
            random_state=est.random_state,
            max_categories_exhaustive=int(est.max_categories_exhaustive),
        )
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if not (0.0 < self.size_per <= 1.0):
            raise ConfigurationError(
                f"size_per must be in (0, 1], got {self.size_per!r}")
        if self.prune and self.num_folds_pruning < 2:
            raise ConfigurationError(
                "num_folds_pruning must be at least 2 when prune=True, "
                f"got {self.num_folds_pruning!r}")
        if self.min_num_obj < 0:
            raise ConfigurationError(
                f"min_num_obj must be non-negative, got {self.min_num_obj!r}")
        if self.max_categories_exhaustive < 2:
            raise ConfigurationError(
                "max_categories_exhaustive must be at least 2, "
                f"got {self.max_categories_exhaustive!r}")
