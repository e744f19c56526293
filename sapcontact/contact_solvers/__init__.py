"""Contact solver building blocks for sapcontact."""

from .sap import SapConstraint, SapContactProblem, SapModel, SapModelContext, SapModelParameters

__all__ = [
    "SapConstraint",
    "SapContactProblem",
    "SapModel",
    "SapModelContext",
    "SapModelParameters",
]
