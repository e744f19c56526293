"""Constraints and problems shared by the SAP model tests."""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np
import torch

from sapcontact.contact_solvers.sap import SapConstraint, SapContactProblem


class SpringConstraint(SapConstraint):
    """Spring-damper between a 3D particle and the origin.

    The projection is the identity, γ = y, and bias and regularization are set
    so that γ = −δt⋅(k⋅x + d⋅v) with d = τ_d⋅k.
    """

    def __init__(self, clique: int, x, k: float, tau_d: float) -> None:
        super().__init__(clique, x, np.eye(3))
        self.k = k
        self.tau_d = tau_d

    def calc_bias_term(self, time_step, wi) -> torch.Tensor:
        return -self.constraint_function / (time_step + self.tau_d)

    def calc_diagonal_regularization(self, time_step, wi) -> torch.Tensor:
        R = 1.0 / (time_step * (time_step + self.tau_d) * self.k)
        return torch.full((3,), R, dtype=torch.float64)

    def project(self, y, R, need_derivative=False) -> Tuple[torch.Tensor, Optional[torch.Tensor]]:
        dPdy = torch.eye(3, dtype=y.dtype) if need_derivative else None
        return y, dPdy


class DummyConstraint(SapConstraint):
    """Constraint with given bias and regularization and projection γ = max(0, y).

    dγ/dy is the componentwise Heaviside function, taken as 1 at y = 0.
    """

    def __init__(self, clique: int, J, R, v_hat, second_clique: Optional[int] = None, second_jacobian=None) -> None:
        super().__init__(clique, np.zeros(len(R)), J, second_clique=second_clique, second_jacobian=second_jacobian)
        self.R = torch.as_tensor(np.asarray(R, dtype=float))
        self.v_hat = torch.as_tensor(np.asarray(v_hat, dtype=float))

    def calc_bias_term(self, time_step, wi) -> torch.Tensor:
        return self.v_hat

    def calc_diagonal_regularization(self, time_step, wi) -> torch.Tensor:
        return self.R

    def project(self, y, R, need_derivative=False) -> Tuple[torch.Tensor, Optional[torch.Tensor]]:
        gamma = torch.clamp(y, min=0.0)
        if not need_derivative:
            return gamma, None
        return gamma, torch.diag((y >= 0).to(y.dtype))


class SpringMassModel:
    """Two 3D particles; only the first is tied to the origin by a spring-damper."""

    time_step = 1.0e-3
    mass1 = 1.5
    mass2 = 3.0
    stiffness = 100.0
    dissipation_time_scale = 0.1
    gravity = 10.0

    def make_contact_problem(self, q: np.ndarray, v: np.ndarray) -> SapContactProblem:
        A = [self.mass1 * np.eye(3), self.mass2 * np.eye(3)]
        g = self.gravity * np.array([0.0, 0.0, 1.0, 0.0, 0.0, 1.0])
        v_star = np.asarray(v, dtype=float) - self.time_step * g
        problem = SapContactProblem(self.time_step, A, v_star)
        problem.add_constraint(SpringConstraint(0, q[:3], self.stiffness, self.dissipation_time_scale))
        return problem


def make_jacobian(rows: int, cols: int) -> np.ndarray:
    """Matrix whose entries are their column-major linear index, starting at 1.

    make_jacobian(3, 2) is [[1, 4], [2, 5], [3, 6]].
    """
    return np.arange(1.0, rows * cols + 1.0).reshape((rows, cols), order="F")


class DummyModel:
    """Three cliques of sizes 2, 3 and 4 with non-trivial, known problem data.

    Constraint 0 acts on clique 0 (3 equations), constraint 1 couples cliques 1
    and 2 (5 equations). All dynamics blocks are SPD and all regularizations
    positive.
    """

    time_step = 1.0e-3
    num_velocities = 9

    def __init__(self) -> None:
        S22 = np.array([[2.0, 1.0], [1.0, 2.0]])
        S33 = np.array([[4.0, 1.0, 2.0], [1.0, 5.0, 3.0], [2.0, 3.0, 6.0]])
        S44 = np.array(
            [
                [7.0, 1.0, 2.0, 3.0],
                [1.0, 8.0, 4.0, 5.0],
                [2.0, 4.0, 9.0, 6.0],
                [3.0, 5.0, 6.0, 10.0],
            ]
        )
        self.dynamics_matrix: List[np.ndarray] = [S22, S33, S44]
        self.v_star = np.linspace(1.0, float(self.num_velocities), self.num_velocities)

    def make_contact_problem(self) -> SapContactProblem:
        problem = SapContactProblem(self.time_step, self.dynamics_matrix, self.v_star)
        problem.add_constraint(
            DummyConstraint(0, make_jacobian(3, 2), R=np.linspace(1.0, 3.0, 3), v_hat=[1.0, 2.0, 0.2])
        )
        R = np.linspace(1.0, 5.0, 5)
        problem.add_constraint(
            DummyConstraint(
                1,
                make_jacobian(5, 3),
                R=R,
                v_hat=100.0 * R,
                second_clique=2,
                second_jacobian=make_jacobian(5, 4),
            )
        )
        return problem


def block_diagonal(blocks: List[torch.Tensor]) -> torch.Tensor:
    return torch.block_diag(*blocks)


def arbitrary_v() -> torch.Tensor:
    return torch.tensor([0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9], dtype=torch.float64)
