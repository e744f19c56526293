"""Graph of cliques connected by constraints, split into independent clusters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .permutation import PartialPermutation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConstraintCluster:
    """A connected component of the contact graph.

    ``cliques`` and ``constraint_index`` hold original indices in the order
    they are first met when scanning constraints in insertion order.
    """

    cliques: Tuple[int, ...]
    constraint_index: Tuple[int, ...]
    num_constraint_equations: int

    def num_cliques(self) -> int:
        return len(self.cliques)

    def num_constraints(self) -> int:
        return len(self.constraint_index)


@dataclass(frozen=True)
class _GraphEdge:
    first_clique: int
    second_clique: Optional[int]
    num_equations: int


class ContactProblemGraph:
    """Cliques are nodes, constraints are edges (self-loops for one-clique constraints).

    Cliques not referenced by any constraint do not participate and are left
    out of every cluster.
    """

    def __init__(self, num_cliques: int) -> None:
        if num_cliques < 0:
            raise ValueError(f"Number of cliques must be non-negative, got {num_cliques}")
        self._num_cliques = int(num_cliques)
        self._edges: List[_GraphEdge] = []
        self._clusters: Optional[List[ConstraintCluster]] = None

    @property
    def num_cliques(self) -> int:
        return self._num_cliques

    @property
    def num_constraints(self) -> int:
        return len(self._edges)

    @property
    def num_constraint_equations(self) -> int:
        return sum(e.num_equations for e in self._edges)

    def add_constraint(self, first_clique: int, second_clique: Optional[int], num_equations: int) -> int:
        """Adds an edge and returns its constraint index."""
        self._check_clique(first_clique)
        if second_clique is not None:
            self._check_clique(second_clique)
            if second_clique == first_clique:
                raise ValueError(f"A two-clique constraint must reference distinct cliques, got {first_clique} twice")
        if num_equations <= 0:
            raise ValueError(f"Constraints must have at least one equation, got {num_equations}")
        self._edges.append(_GraphEdge(int(first_clique), None if second_clique is None else int(second_clique), int(num_equations)))
        self._clusters = None
        return len(self._edges) - 1

    def _check_clique(self, clique: int) -> None:
        if not 0 <= clique < self._num_cliques:
            raise ValueError(f"Clique index {clique} out of range [0, {self._num_cliques})")

    def clusters(self) -> List[ConstraintCluster]:
        if self._clusters is None:
            self._clusters = self._compute_clusters()
        return list(self._clusters)

    def num_clusters(self) -> int:
        return len(self.clusters())

    def _compute_clusters(self) -> List[ConstraintCluster]:
        parent: Dict[int, int] = {}

        def find(c: int) -> int:
            parent.setdefault(c, c)
            root = c
            while parent[root] != root:
                root = parent[root]
            # path compression
            while parent[c] != root:
                parent[c], c = root, parent[c]
            return root

        for edge in self._edges:
            root0 = find(edge.first_clique)
            if edge.second_clique is not None:
                root1 = find(edge.second_clique)
                if root0 != root1:
                    parent[root1] = root0

        order: List[int] = []
        cliques: Dict[int, List[int]] = {}
        constraints: Dict[int, List[int]] = {}
        equations: Dict[int, int] = {}
        seen = set()
        for k, edge in enumerate(self._edges):
            root = find(edge.first_clique)
            if root not in cliques:
                order.append(root)
                cliques[root] = []
                constraints[root] = []
                equations[root] = 0
            constraints[root].append(k)
            equations[root] += edge.num_equations
            for c in (edge.first_clique, edge.second_clique):
                if c is not None and c not in seen:
                    seen.add(c)
                    cliques[root].append(c)

        clusters = [
            ConstraintCluster(tuple(cliques[r]), tuple(constraints[r]), equations[r]) for r in order
        ]
        logger.debug(
            "Contact graph: %d cliques, %d participating, %d constraints in %d clusters",
            self._num_cliques,
            len(seen),
            len(self._edges),
            len(clusters),
        )
        return clusters

    def participating_cliques(self) -> PartialPermutation:
        """Permutation from original clique indices to cluster order."""
        permuted_index = [-1] * self._num_cliques
        next_index = 0
        for cluster in self.clusters():
            for c in cluster.cliques:
                permuted_index[c] = next_index
                next_index += 1
        return PartialPermutation(permuted_index)

    def constraints_permutation(self) -> PartialPermutation:
        """Permutation from original constraint indices to cluster order. Every constraint participates."""
        permuted_index = [-1] * len(self._edges)
        next_index = 0
        for cluster in self.clusters():
            for k in cluster.constraint_index:
                permuted_index[k] = next_index
                next_index += 1
        return PartialPermutation(permuted_index)

    def constraint_sizes(self) -> List[int]:
        return [e.num_equations for e in self._edges]


__all__ = ["ConstraintCluster", "ContactProblemGraph"]
