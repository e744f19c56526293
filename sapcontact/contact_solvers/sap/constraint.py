"""Abstract contract for constraints consumed by the SAP model."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import torch

from .tensor_utils import as_tensor


class SapConstraint(ABC):
    """Constraint acting on one clique, or coupling two distinct cliques.

    A constraint owns the value of its constraint function g and one Jacobian
    block per referenced clique, each mapping that clique's velocities to the
    n constraint equations. Subclasses supply the physics: the bias term v̂,
    the diagonal regularization R and the projection γ = P(y).

    Constraint data is fixed at construction.
    """

    def __init__(
        self,
        clique: int,
        g: Any,
        J: Any,
        second_clique: Optional[int] = None,
        second_jacobian: Any = None,
    ) -> None:
        self._g = as_tensor(g, copy=True).reshape(-1)
        n = self._g.shape[0]
        if n == 0:
            raise ValueError("Constraints must have at least one equation")
        if clique < 0:
            raise ValueError(f"Clique index must be non-negative, got {clique}")
        self._cliques: Tuple[int, ...] = (int(clique),)
        self._jacobians: Tuple[torch.Tensor, ...] = (self._check_jacobian(as_tensor(J, copy=True), n, "J"),)
        if second_clique is not None or second_jacobian is not None:
            if second_clique is None or second_jacobian is None:
                raise ValueError("Two-clique constraints need both second_clique and second_jacobian")
            if second_clique < 0:
                raise ValueError(f"Clique index must be non-negative, got {second_clique}")
            if second_clique == clique:
                raise ValueError(f"Cliques must be distinct, got {clique} twice")
            self._cliques = (int(clique), int(second_clique))
            self._jacobians = self._jacobians + (self._check_jacobian(as_tensor(second_jacobian, copy=True), n, "J1"),)

    @staticmethod
    def _check_jacobian(J: torch.Tensor, n: int, name: str) -> torch.Tensor:
        if J.dim() != 2 or J.shape[0] != n:
            raise ValueError(f"Jacobian {name} must have shape ({n}, nv), got {tuple(J.shape)}")
        return J

    def num_constraint_equations(self) -> int:
        return self._g.shape[0]

    @property
    def num_cliques(self) -> int:
        return len(self._cliques)

    def cliques(self) -> Tuple[int, ...]:
        return self._cliques

    @property
    def first_clique(self) -> int:
        return self._cliques[0]

    @property
    def second_clique(self) -> int:
        if self.num_cliques < 2:
            raise ValueError("This constraint references a single clique")
        return self._cliques[1]

    @property
    def first_clique_jacobian(self) -> torch.Tensor:
        return self._jacobians[0]

    @property
    def second_clique_jacobian(self) -> torch.Tensor:
        if self.num_cliques < 2:
            raise ValueError("This constraint references a single clique")
        return self._jacobians[1]

    def clique_jacobian(self, side: int) -> torch.Tensor:
        """Jacobian block for the first (side 0) or second (side 1) clique."""
        if side not in (0, 1) or side >= self.num_cliques:
            raise ValueError(f"Invalid side {side} for a constraint with {self.num_cliques} clique(s)")
        return self._jacobians[side]

    def num_velocities(self, side: int) -> int:
        return self.clique_jacobian(side).shape[1]

    @property
    def constraint_function(self) -> torch.Tensor:
        return self._g

    @abstractmethod
    def calc_bias_term(self, time_step: Any, wi: Any) -> torch.Tensor:
        """Bias v̂ such that the unprojected impulse is y = −R⁻¹(Jv − v̂).

        ``wi`` is the Delassus diagonal estimate for this constraint.
        """
        raise NotImplementedError

    @abstractmethod
    def calc_diagonal_regularization(self, time_step: Any, wi: Any) -> torch.Tensor:
        """Strictly positive regularization R, one entry per equation."""
        raise NotImplementedError

    @abstractmethod
    def project(
        self, y: torch.Tensor, R: torch.Tensor, need_derivative: bool = False
    ) -> Tuple[torch.Tensor, Optional[torch.Tensor]]:
        """Projected impulse γ = P(y) and, when requested, the n×n derivative dP/dy.

        At points where P is not differentiable implementations return a valid
        sub-derivative. The derivative is None when not requested.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(cliques={self._cliques}, "
            f"num_equations={self.num_constraint_equations()})"
        )


__all__ = ["SapConstraint"]
