"""Aggregated constraint data over the reduced velocities of a SAP model."""

from __future__ import annotations

from typing import List, Tuple

import torch

from .block_sparse import BlockSparseMatrix
from .constraint import SapConstraint
from .contact_problem import SapContactProblem
from .permutation import PartialPermutation
from .tensor_utils import as_tensor


class SapConstraintBundle:
    """Stacks the Jacobians, bias terms and regularizations of all constraints.

    Constraints are laid out in cluster order (``constraints_permutation``) and
    Jacobian block columns follow the participating cliques
    (``cliques_permutation``). ``delassus_diagonal`` holds one estimate per
    constraint in cluster order and is handed to each constraint when
    computing its bias and regularization.
    """

    def __init__(
        self,
        problem: SapContactProblem,
        cliques_permutation: PartialPermutation,
        constraints_permutation: PartialPermutation,
        delassus_diagonal: torch.Tensor,
        dtype: torch.dtype = torch.float64,
    ) -> None:
        self._constraints: List[SapConstraint] = constraints_permutation.apply(problem.constraints)
        reduced_cliques = cliques_permutation.apply(list(range(problem.num_cliques())))
        clique_sizes = [problem.num_velocities(c) for c in reduced_cliques]
        sizes = [c.num_constraint_equations() for c in self._constraints]
        self._offsets = [0]
        for n in sizes:
            self._offsets.append(self._offsets[-1] + n)

        self._J = BlockSparseMatrix(sizes, clique_sizes)
        v_hat: List[torch.Tensor] = []
        R: List[torch.Tensor] = []
        for i, constraint in enumerate(self._constraints):
            for side, c in enumerate(constraint.cliques()):
                self._J.add_block(i, cliques_permutation.permuted_index(c), as_tensor(constraint.clique_jacobian(side), dtype))
            wi = delassus_diagonal[i]
            v_hat_i = as_tensor(constraint.calc_bias_term(problem.time_step, wi), dtype).reshape(-1)
            R_i = as_tensor(constraint.calc_diagonal_regularization(problem.time_step, wi), dtype).reshape(-1)
            if v_hat_i.shape[0] != sizes[i] or R_i.shape[0] != sizes[i]:
                raise ValueError(
                    f"{constraint!r} returned bias of size {v_hat_i.shape[0]} and regularization of size "
                    f"{R_i.shape[0]}, expected {sizes[i]}"
                )
            if not bool(torch.all(R_i > 0)):
                raise ValueError(f"{constraint!r} returned a non-positive regularization")
            v_hat.append(v_hat_i)
            R.append(R_i)

        self._v_hat = torch.cat(v_hat) if v_hat else torch.zeros(0, dtype=dtype)
        self._R = torch.cat(R) if R else torch.zeros(0, dtype=dtype)
        self._Rinv = 1.0 / self._R

    def num_constraints(self) -> int:
        return len(self._constraints)

    def num_constraint_equations(self) -> int:
        return self._offsets[-1]

    def constraint(self, i: int) -> SapConstraint:
        """The i-th constraint in cluster order."""
        return self._constraints[i]

    def constraint_offset(self, i: int) -> int:
        """First equation of the i-th constraint (cluster order) in the stacked vectors."""
        return self._offsets[i]

    def J(self) -> BlockSparseMatrix:
        return self._J

    def v_hat(self) -> torch.Tensor:
        return self._v_hat

    def R(self) -> torch.Tensor:
        return self._R

    def Rinv(self) -> torch.Tensor:
        return self._Rinv

    def calc_unprojected_impulses(self, vc: torch.Tensor) -> torch.Tensor:
        """y = −R⁻¹⋅(vc − v̂), computed componentwise."""
        if vc.shape[0] != self.num_constraint_equations():
            raise ValueError(f"Constraint velocities have size {vc.shape[0]}, expected {self.num_constraint_equations()}")
        return -self._Rinv * (vc - self._v_hat)

    def project_impulses(self, y: torch.Tensor) -> torch.Tensor:
        """Applies each constraint's projection to its own slice of y."""
        gamma, _ = self._project(y, need_derivative=False)
        return gamma

    def project_impulses_and_calc_constraints_hessian(self, y: torch.Tensor) -> Tuple[torch.Tensor, List[torch.Tensor]]:
        """Projected impulses and the per-constraint Hessian blocks Gᵢ = dPᵢ/dyᵢ⋅Rᵢ⁻¹."""
        return self._project(y, need_derivative=True)

    def _project(self, y: torch.Tensor, need_derivative: bool) -> Tuple[torch.Tensor, List[torch.Tensor]]:
        if y.shape[0] != self.num_constraint_equations():
            raise ValueError(f"Impulses have size {y.shape[0]}, expected {self.num_constraint_equations()}")
        gamma: List[torch.Tensor] = []
        G: List[torch.Tensor] = []
        for i, constraint in enumerate(self._constraints):
            start, end = self._offsets[i], self._offsets[i + 1]
            gamma_i, dPdy = constraint.project(y[start:end], self._R[start:end], need_derivative)
            gamma.append(gamma_i)
            if need_derivative:
                if dPdy is None:
                    raise ValueError(f"{constraint!r} did not return dP/dy when requested")
                # dP/dy⋅diag(R⁻¹), scaling columns.
                G.append(dPdy * self._Rinv[start:end].unsqueeze(0))
        if not gamma:
            return y.new_zeros(0), G
        return torch.cat(gamma), G


__all__ = ["SapConstraintBundle"]
