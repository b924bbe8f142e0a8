"""
Discrete Factors
================

A factor is a non-negative table over a set of discrete variables, stored
as a numpy array with one axis per variable. Variable elimination only
needs three operations: product, summing a variable out, and zeroing the
entries that disagree with an observation.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

import numpy as np


@dataclass
class Factor:
    variables: Tuple[str, ...]
    values: np.ndarray

    def __post_init__(self):
        self.variables = tuple(self.variables)
        if self.values.ndim != len(self.variables):
            raise ValueError(
                f"factor over {self.variables} needs {len(self.variables)} axes, "
                f"got {self.values.ndim}"
            )

    @property
    def cardinalities(self) -> Dict[str, int]:
        return dict(zip(self.variables, self.values.shape))

    def __contains__(self, variable: str) -> bool:
        return variable in self.variables

    def _aligned(self, variables: Sequence[str]) -> np.ndarray:
        """View of values broadcastable over `variables` (a superset)."""
        if not self.variables:
            return self.values.reshape([1] * len(variables))
        present = [v for v in variables if v in self.variables]
        perm = [self.variables.index(v) for v in present]
        arr = np.transpose(self.values, perm)
        shape = [self.values.shape[self.variables.index(v)] if v in self.variables else 1
                 for v in variables]
        return arr.reshape(shape)

    def multiply(self, other: "Factor") -> "Factor":
        """Product over the union of both variable lists."""
        variables = self.variables + tuple(v for v in other.variables if v not in self.variables)
        values = self._aligned(variables) * other._aligned(variables)
        return Factor(variables, values)

    def sum_out(self, variable: str) -> "Factor":
        if variable not in self.variables:
            return self
        axis = self.variables.index(variable)
        remaining = self.variables[:axis] + self.variables[axis + 1:]
        return Factor(remaining, self.values.sum(axis=axis))

    def reduce(self, variable: str, index: int) -> "Factor":
        """Zero every entry where `variable` is not at `index`."""
        if variable not in self.variables:
            return self
        axis = self.variables.index(variable)
        mask_shape = [1] * self.values.ndim
        mask_shape[axis] = self.values.shape[axis]
        mask = np.zeros(self.values.shape[axis])
        mask[index] = 1.0
        mask = mask.reshape(mask_shape)
        return Factor(self.variables, self.values * mask)

    def marginal(self, keep: Sequence[str]) -> "Factor":
        """Sum out everything not in `keep`, ordering axes as in `keep`."""
        result = self
        for v in self.variables:
            if v not in keep:
                result = result.sum_out(v)
        perm = [result.variables.index(v) for v in keep]
        return Factor(tuple(keep), np.transpose(result.values, perm))

    def normalized(self) -> "Factor":
        total = float(self.values.sum())
        if total <= 0 or not np.isfinite(total):
            return Factor(self.variables, np.full(self.values.shape, 1.0 / max(self.values.size, 1)))
        return Factor(self.variables, self.values / total)


def multiply_all(factors: Sequence[Factor]) -> Factor:
    """Product of factors; the empty product is the scalar 1."""
    result = Factor((), np.array(1.0))
    for f in factors:
        result = result.multiply(f)
    return result


def elimination_order(
    factors: Sequence[Factor],
    eliminate: Sequence[str],
) -> List[str]:
    """
    Greedy min-degree ordering.

    At each step picks the variable with the fewest neighbours in the
    interaction graph of the remaining factors, then connects its neighbours
    as elimination would.
    """
    neighbours: Dict[str, set] = {}
    for f in factors:
        for v in f.variables:
            neighbours.setdefault(v, set()).update(u for u in f.variables if u != v)

    remaining = [v for v in eliminate if v in neighbours]
    order: List[str] = []
    while remaining:
        # ties broken by input order
        best = min(remaining, key=lambda v: len(neighbours[v]))
        order.append(best)
        remaining.remove(best)
        adjacent = neighbours.pop(best)
        for u in adjacent:
            neighbours[u].discard(best)
            neighbours[u].update(w for w in adjacent if w != u)
    return order


def eliminate(factors: List[Factor], order: Sequence[str]) -> List[Factor]:
    """Multiply the factors containing each variable and sum it out."""
    pool = list(factors)
    for variable in order:
        touching = [f for f in pool if variable in f]
        if not touching:
            continue
        pool = [f for f in pool if variable not in f]
        pool.append(multiply_all(touching).sum_out(variable))
    return pool


def table_from_distribution(
    variables: Sequence[str],
    states: Mapping[str, Sequence[str]],
    probability,
) -> np.ndarray:
    """
    Fill an array over `variables` by calling probability(assignment).

    `assignment` maps each variable to a state label.
    """
    shape = tuple(len(states[v]) for v in variables)
    values = np.zeros(shape)
    for index in np.ndindex(*shape):
        assignment = {v: states[v][i] for v, i in zip(variables, index)}
        values[index] = probability(assignment)
    return values
