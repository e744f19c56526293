"""Container for a single time step contact problem."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

import torch

from .constraint import SapConstraint
from .graph import ContactProblemGraph
from .tensor_utils import as_tensor

logger = logging.getLogger(__name__)


class SapContactProblem:
    """Cliques with their dynamics matrices, free motion velocities and constraints.

    ``A[c]`` is the dynamics (mass) matrix of clique c and ``v_star`` stacks the
    free motion velocities of all cliques in clique order. The problem owns the
    constraints added to it.
    """

    def __init__(self, time_step: float, A: Sequence[Any], v_star: Any, dtype: torch.dtype = torch.float64) -> None:
        if not time_step > 0:
            raise ValueError(f"Time step must be positive, got {time_step}")
        self._time_step = time_step
        self._dtype = dtype
        self._A: List[torch.Tensor] = []
        for c, Ac in enumerate(A):
            Ac = as_tensor(Ac, dtype, copy=True)
            if Ac.dim() != 2 or Ac.shape[0] != Ac.shape[1]:
                raise ValueError(f"Dynamics matrix of clique {c} must be square, got shape {tuple(Ac.shape)}")
            self._A.append(Ac)
        self._velocities_start = [0]
        for Ac in self._A:
            self._velocities_start.append(self._velocities_start[-1] + Ac.shape[0])
        self._v_star = as_tensor(v_star, dtype, copy=True).reshape(-1)
        if self._v_star.shape[0] != self.num_velocities():
            raise ValueError(
                f"v_star has size {self._v_star.shape[0]}, expected {self.num_velocities()} "
                f"(sum of clique sizes)"
            )
        self._constraints: List[SapConstraint] = []
        self._graph: Optional[ContactProblemGraph] = None

    @property
    def time_step(self) -> float:
        return self._time_step

    @property
    def dtype(self) -> torch.dtype:
        return self._dtype

    @property
    def dynamics_matrix(self) -> List[torch.Tensor]:
        return list(self._A)

    @property
    def v_star(self) -> torch.Tensor:
        return self._v_star

    @property
    def constraints(self) -> List[SapConstraint]:
        return list(self._constraints)

    def num_cliques(self) -> int:
        return len(self._A)

    def num_velocities(self, clique: Optional[int] = None) -> int:
        """Total number of velocities, or the number of velocities of one clique."""
        if clique is None:
            return self._velocities_start[-1]
        self._check_clique(clique)
        return self._A[clique].shape[0]

    def velocities_start(self, clique: int) -> int:
        self._check_clique(clique)
        return self._velocities_start[clique]

    def num_constraints(self) -> int:
        return len(self._constraints)

    def num_constraint_equations(self) -> int:
        return sum(c.num_constraint_equations() for c in self._constraints)

    def get_constraint(self, index: int) -> SapConstraint:
        if not 0 <= index < len(self._constraints):
            raise ValueError(f"Constraint index {index} out of range [0, {len(self._constraints)})")
        return self._constraints[index]

    def add_constraint(self, constraint: SapConstraint) -> int:
        """Adds a constraint and returns its index.

        The referenced cliques must exist and the Jacobian blocks must have one
        column per velocity of their clique.
        """
        for side, c in enumerate(constraint.cliques()):
            self._check_clique(c)
            nv = self._A[c].shape[0]
            if constraint.num_velocities(side) != nv:
                raise ValueError(
                    f"Jacobian for clique {c} has {constraint.num_velocities(side)} columns, "
                    f"expected {nv}"
                )
        self._constraints.append(constraint)
        self._graph = None
        logger.debug("Added constraint %d: %r", len(self._constraints) - 1, constraint)
        return len(self._constraints) - 1

    def graph(self) -> ContactProblemGraph:
        """Contact graph for the constraints added so far."""
        if self._graph is None:
            graph = ContactProblemGraph(self.num_cliques())
            for constraint in self._constraints:
                second = constraint.second_clique if constraint.num_cliques == 2 else None
                graph.add_constraint(constraint.first_clique, second, constraint.num_constraint_equations())
            self._graph = graph
        return self._graph

    def _check_clique(self, clique: int) -> None:
        if not 0 <= clique < len(self._A):
            raise ValueError(f"Clique index {clique} out of range [0, {len(self._A)})")


__all__ = ["SapContactProblem"]
