"""Reduced SAP contact model.

Builds, from a contact problem over independent cliques, the minimal cluster
ordered problem that only involves constrained degrees of freedom, and
evaluates the convex SAP cost together with its gradient and Hessian.
"""

from .block_sparse import BlockSparseMatrix
from .bundle import SapConstraintBundle
from .config_loader import load_sap_model_parameters
from .configs import SapModelParameters
from .constraint import SapConstraint
from .contact_problem import SapContactProblem
from .graph import ConstraintCluster, ContactProblemGraph
from .model import SapModel, SapModelCache, SapModelContext
from .permutation import PartialPermutation

__all__ = [
    "BlockSparseMatrix",
    "ConstraintCluster",
    "ContactProblemGraph",
    "PartialPermutation",
    "SapConstraint",
    "SapConstraintBundle",
    "SapContactProblem",
    "SapModel",
    "SapModelCache",
    "SapModelContext",
    "SapModelParameters",
    "load_sap_model_parameters",
]
