"""Reduced SAP model: cost, gradient and Hessian of the convex contact problem.

Given a SapContactProblem, the model keeps only the cliques that participate in
at least one constraint, orders cliques and constraints by cluster and
precomputes all data that does not depend on the velocities. The cost

    ℓ(v) = ½‖v − v*‖²_A + ½ γᵀ⋅R⋅γ,   γ = P(y),   y = −R⁻¹⋅(J⋅v − v̂)

and its derivatives are then evaluated for velocities stored in a
SapModelContext. The model itself is never modified after construction, so
several contexts can be evaluated independently (e.g. line search trials).

All evaluations are out-of-place tensor operations with no branching on tensor
values, so they differentiate through autograd and torch.func.jacfwd.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, List, Optional

import torch

from .bundle import SapConstraintBundle
from .configs import SapModelParameters
from .contact_problem import SapContactProblem
from .permutation import PartialPermutation
from .tensor_utils import as_tensor

logger = logging.getLogger(__name__)


@dataclass
class SapModelCache:
    """Quantities derived from the velocities of one context. None means not yet computed."""

    constraint_velocities: Optional[torch.Tensor] = None
    momentum: Optional[torch.Tensor] = None
    momentum_gain: Optional[torch.Tensor] = None
    momentum_cost: Optional[torch.Tensor] = None
    unprojected_impulses: Optional[torch.Tensor] = None
    impulses: Optional[torch.Tensor] = None
    generalized_impulses: Optional[torch.Tensor] = None
    regularizer_cost: Optional[torch.Tensor] = None
    cost: Optional[torch.Tensor] = None
    cost_gradient: Optional[torch.Tensor] = None
    constraints_hessian: Optional[List[torch.Tensor]] = None

    def invalidate(self) -> None:
        for f in fields(self):
            setattr(self, f.name, None)

    def is_valid(self, name: str) -> bool:
        return getattr(self, name) is not None


@dataclass(eq=False)
class SapModelContext:
    """Evaluation state for a SapModel: the reduced velocities and their cache."""

    model: "SapModel" = field(repr=False)
    velocities: Optional[torch.Tensor] = None
    cache: SapModelCache = field(default_factory=SapModelCache, repr=False)


class SapModel:
    """Reduced, cluster-ordered model of a SapContactProblem."""

    def __init__(self, problem: SapContactProblem, parameters: Optional[SapModelParameters] = None) -> None:
        self._problem = problem
        self._parameters = parameters or SapModelParameters()
        self._dtype = self._parameters.torch_dtype()

        graph = problem.graph()
        self._cliques_permutation = graph.participating_cliques()
        constraints_permutation = graph.constraints_permutation()
        num_cliques = self._cliques_permutation.permuted_domain_size()
        if num_cliques == 0 and not self._parameters.allow_empty_model:
            raise ValueError(
                "No clique participates in a constraint; set allow_empty_model to build an empty model"
            )

        clique_sizes = [problem.num_velocities(c) for c in range(problem.num_cliques())]
        self._velocities_permutation = self._cliques_permutation.expand_blocks(clique_sizes)
        self._constraints_permutation = constraints_permutation.expand_blocks(graph.constraint_sizes())

        all_A = [as_tensor(A, self._dtype, copy=True) for A in problem.dynamics_matrix]
        self._check_symmetry(all_A)
        all_L = self._factorize(all_A)
        self._A: List[torch.Tensor] = self._cliques_permutation.apply(all_A)
        self._L = None if all_L is None else self._cliques_permutation.apply(all_L)
        self._clique_starts = [0]
        for A in self._A:
            self._clique_starts.append(self._clique_starts[-1] + A.shape[0])

        self._v_star = as_tensor(self._velocities_permutation.apply(problem.v_star), self._dtype)
        self._p_star = self.multiply_by_dynamics_matrix(self._v_star)
        if self._A:
            self._inv_sqrt_A = torch.cat([torch.diagonal(A) for A in self._A]).rsqrt()
        else:
            self._inv_sqrt_A = torch.zeros(0, dtype=self._dtype)

        self._delassus_diagonal = self._calc_delassus_diagonal_approximation(constraints_permutation)
        self._bundle = SapConstraintBundle(
            problem, self._cliques_permutation, constraints_permutation, self._delassus_diagonal, self._dtype
        )

        logger.info(
            "SAP model: %d/%d cliques, %d/%d velocities, %d constraints, %d equations, %d clusters",
            num_cliques,
            problem.num_cliques(),
            self.num_velocities(),
            problem.num_velocities(),
            self.num_constraints(),
            self.num_constraint_equations(),
            graph.num_clusters(),
        )

    def _check_symmetry(self, all_A: List[torch.Tensor]) -> None:
        tol = self._parameters.symmetry_tolerance
        for clique, A in enumerate(all_A):
            A = A.detach()
            scale = float(torch.max(torch.abs(A))) if A.numel() else 0.0
            asym = float(torch.max(torch.abs(A - A.T))) if A.numel() else 0.0
            if asym > tol * scale:
                raise ValueError(f"Dynamics matrix of clique {clique} is not symmetric (max |A - Aᵀ| = {asym:g})")

    def _factorize(self, all_A: List[torch.Tensor]) -> Optional[List[torch.Tensor]]:
        """Cholesky factors of every clique, participating or not."""
        if not self._parameters.check_positive_definite:
            return None
        factors = []
        for clique, A in enumerate(all_A):
            L, info = torch.linalg.cholesky_ex(A)
            if int(info) != 0:
                raise ValueError(f"Dynamics matrix of clique {clique} is not positive definite")
            factors.append(L)
        return factors

    def _calc_delassus_diagonal_approximation(self, constraints_permutation: PartialPermutation) -> torch.Tensor:
        """One RMS estimate ‖Wᵢ‖/nᵢ per constraint, in cluster order.

        Wᵢ = Σ Jᵢc⋅A_c⁻¹⋅Jᵢcᵀ sums over the cliques of constraint i, so only the
        constraint's own Jacobian blocks are ever multiplied by A⁻¹.
        """
        constraints = constraints_permutation.apply(self._problem.constraints)
        if not constraints:
            return torch.zeros(0, dtype=self._dtype)
        w = []
        for constraint in constraints:
            n = constraint.num_constraint_equations()
            W = torch.zeros(n, n, dtype=self._dtype)
            for side, c in enumerate(constraint.cliques()):
                k = self._cliques_permutation.permuted_index(c)
                J = as_tensor(constraint.clique_jacobian(side), self._dtype)
                if self._L is not None:
                    X = torch.linalg.solve_triangular(self._L[k], J.T, upper=False)
                    W = W + X.T @ X
                else:
                    W = W + J @ torch.linalg.solve(self._A[k], J.T)
            w.append(torch.linalg.norm(W) / n)
        return torch.stack(w)

    @property
    def problem(self) -> SapContactProblem:
        return self._problem

    @property
    def parameters(self) -> SapModelParameters:
        return self._parameters

    @property
    def dtype(self) -> torch.dtype:
        return self._dtype

    def num_cliques(self) -> int:
        return len(self._A)

    def num_velocities(self) -> int:
        return self._clique_starts[-1]

    def num_constraints(self) -> int:
        return self._bundle.num_constraints()

    def num_constraint_equations(self) -> int:
        return self._bundle.num_constraint_equations()

    def time_step(self) -> float:
        return self._problem.time_step

    def dynamics_matrix(self) -> List[torch.Tensor]:
        """Dynamics matrix blocks of the participating cliques, in cluster order."""
        return list(self._A)

    def v_star(self) -> torch.Tensor:
        return self._v_star

    def p_star(self) -> torch.Tensor:
        return self._p_star

    def inv_sqrt_dynamics_matrix(self) -> torch.Tensor:
        """diag(A)^(-1/2), a diagonal scaling used to condition the problem."""
        return self._inv_sqrt_A

    def delassus_diagonal(self) -> torch.Tensor:
        return self._delassus_diagonal

    def cliques_permutation(self) -> PartialPermutation:
        return self._cliques_permutation

    def velocities_permutation(self) -> PartialPermutation:
        return self._velocities_permutation

    def constraints_permutation(self) -> PartialPermutation:
        """Permutation of constraint equations from problem order to cluster order."""
        return self._constraints_permutation

    def constraints_bundle(self) -> SapConstraintBundle:
        return self._bundle

    def multiply_by_dynamics_matrix(self, v: torch.Tensor) -> torch.Tensor:
        """Applies the block diagonal A to a vector of reduced velocities."""
        if v.shape[0] != self.num_velocities():
            raise ValueError(f"Vector has size {v.shape[0]}, expected {self.num_velocities()}")
        if not self._A:
            return v.new_zeros(0)
        return torch.cat(
            [A @ v[self._clique_starts[k] : self._clique_starts[k + 1]] for k, A in enumerate(self._A)]
        )

    def make_context(self) -> SapModelContext:
        return SapModelContext(model=self)

    def set_velocities(self, v: Any, context: SapModelContext) -> None:
        self._check_context(context)
        v = as_tensor(v, self._dtype, copy=True)
        if v.dim() != 1 or v.shape[0] != self.num_velocities():
            raise ValueError(f"Velocities have shape {tuple(v.shape)}, expected ({self.num_velocities()},)")
        context.velocities = v
        context.cache.invalidate()

    def get_velocities(self, context: SapModelContext) -> torch.Tensor:
        self._cache(context)
        return context.velocities

    def eval_constraint_velocities(self, context: SapModelContext) -> torch.Tensor:
        """vc = J⋅v."""
        cache = self._cache(context)
        if cache.constraint_velocities is None:
            cache.constraint_velocities = self._bundle.J().multiply(context.velocities)
        return cache.constraint_velocities

    def eval_momentum(self, context: SapModelContext) -> torch.Tensor:
        """A⋅v."""
        cache = self._cache(context)
        if cache.momentum is None:
            cache.momentum = self.multiply_by_dynamics_matrix(context.velocities)
        return cache.momentum

    def eval_momentum_gain(self, context: SapModelContext) -> torch.Tensor:
        """A⋅(v − v*)."""
        cache = self._cache(context)
        if cache.momentum_gain is None:
            cache.momentum_gain = self.multiply_by_dynamics_matrix(context.velocities - self._v_star)
        return cache.momentum_gain

    def eval_momentum_cost(self, context: SapModelContext) -> torch.Tensor:
        """½(v − v*)ᵀ⋅A⋅(v − v*)."""
        cache = self._cache(context)
        if cache.momentum_cost is None:
            dv = context.velocities - self._v_star
            cache.momentum_cost = 0.5 * torch.dot(dv, self.eval_momentum_gain(context))
        return cache.momentum_cost

    def eval_unprojected_impulses(self, context: SapModelContext) -> torch.Tensor:
        cache = self._cache(context)
        if cache.unprojected_impulses is None:
            vc = self.eval_constraint_velocities(context)
            cache.unprojected_impulses = self._bundle.calc_unprojected_impulses(vc)
        return cache.unprojected_impulses

    def eval_impulses(self, context: SapModelContext) -> torch.Tensor:
        """γ = P(y), the projected impulses in cluster order."""
        cache = self._cache(context)
        if cache.impulses is None:
            y = self.eval_unprojected_impulses(context)
            cache.impulses = self._bundle.project_impulses(y)
        return cache.impulses

    def eval_generalized_impulses(self, context: SapModelContext) -> torch.Tensor:
        """Jᵀ⋅γ."""
        cache = self._cache(context)
        if cache.generalized_impulses is None:
            cache.generalized_impulses = self._bundle.J().transpose_and_multiply(self.eval_impulses(context))
        return cache.generalized_impulses

    def eval_regularizer_cost(self, context: SapModelContext) -> torch.Tensor:
        """½ γᵀ⋅R⋅γ."""
        cache = self._cache(context)
        if cache.regularizer_cost is None:
            gamma = self.eval_impulses(context)
            cache.regularizer_cost = 0.5 * torch.dot(gamma, self._bundle.R() * gamma)
        return cache.regularizer_cost

    def eval_cost(self, context: SapModelContext) -> torch.Tensor:
        cache = self._cache(context)
        if cache.cost is None:
            cache.cost = self.eval_momentum_cost(context) + self.eval_regularizer_cost(context)
        return cache.cost

    def eval_cost_gradient(self, context: SapModelContext) -> torch.Tensor:
        """∇ℓ = A⋅(v − v*) − Jᵀ⋅γ."""
        cache = self._cache(context)
        if cache.cost_gradient is None:
            cache.cost_gradient = self.eval_momentum_gain(context) - self.eval_generalized_impulses(context)
        return cache.cost_gradient

    def eval_constraints_hessian(self, context: SapModelContext) -> List[torch.Tensor]:
        """Blocks Gᵢ, in cluster order, such that the cost Hessian is H = A + Jᵀ⋅G⋅J."""
        cache = self._cache(context)
        if cache.constraints_hessian is None:
            y = self.eval_unprojected_impulses(context)
            gamma, G = self._bundle.project_impulses_and_calc_constraints_hessian(y)
            if cache.impulses is None:
                cache.impulses = gamma
            cache.constraints_hessian = G
        return list(cache.constraints_hessian)

    def _check_context(self, context: SapModelContext) -> None:
        if context.model is not self:
            raise ValueError("Context was not created by this model")

    def _cache(self, context: SapModelContext) -> SapModelCache:
        self._check_context(context)
        if context.velocities is None:
            raise RuntimeError("Velocities must be set with set_velocities() before evaluating the model")
        return context.cache


__all__ = ["SapModel", "SapModelCache", "SapModelContext"]
