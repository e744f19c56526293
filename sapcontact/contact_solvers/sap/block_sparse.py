"""Block sparse matrix with dense blocks."""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

import torch


class BlockSparseMatrix:
    """Matrix partitioned into block rows and block columns, storing only non-zero blocks.

    In the SAP model block rows are constraints and block columns are cliques,
    both in cluster order. Products are computed out-of-place so that autograd
    and forward-mode dual tensors propagate through them.
    """

    def __init__(self, row_sizes: Sequence[int], col_sizes: Sequence[int]) -> None:
        self._row_sizes = [int(s) for s in row_sizes]
        self._col_sizes = [int(s) for s in col_sizes]
        self._row_starts = _starts(self._row_sizes)
        self._col_starts = _starts(self._col_sizes)
        self._blocks: Dict[Tuple[int, int], torch.Tensor] = {}
        self._row_blocks: List[List[int]] = [[] for _ in self._row_sizes]
        self._col_blocks: List[List[int]] = [[] for _ in self._col_sizes]

    def rows(self) -> int:
        return self._row_starts[-1]

    def cols(self) -> int:
        return self._col_starts[-1]

    def block_rows(self) -> int:
        return len(self._row_sizes)

    def block_cols(self) -> int:
        return len(self._col_sizes)

    def num_blocks(self) -> int:
        return len(self._blocks)

    def add_block(self, i: int, j: int, block: torch.Tensor) -> None:
        if not 0 <= i < len(self._row_sizes) or not 0 <= j < len(self._col_sizes):
            raise ValueError(f"Block ({i}, {j}) out of range for {len(self._row_sizes)}x{len(self._col_sizes)} blocks")
        expected = (self._row_sizes[i], self._col_sizes[j])
        if tuple(block.shape) != expected:
            raise ValueError(f"Block ({i}, {j}) has shape {tuple(block.shape)}, expected {expected}")
        if (i, j) in self._blocks:
            raise ValueError(f"Block ({i}, {j}) already added")
        self._blocks[(i, j)] = block
        self._row_blocks[i].append(j)
        self._col_blocks[j].append(i)

    def block(self, i: int, j: int) -> torch.Tensor:
        return self._blocks[(i, j)]

    def multiply(self, x: torch.Tensor) -> torch.Tensor:
        """Returns M⋅x."""
        if x.shape[0] != self.cols():
            raise ValueError(f"Vector has size {x.shape[0]}, expected {self.cols()}")
        segments = []
        for i, size in enumerate(self._row_sizes):
            yi = x.new_zeros(size)
            for j in self._row_blocks[i]:
                yi = yi + self._blocks[(i, j)] @ x[self._col_starts[j] : self._col_starts[j + 1]]
            segments.append(yi)
        if not segments:
            return x.new_zeros(0)
        return torch.cat(segments)

    def transpose_and_multiply(self, y: torch.Tensor) -> torch.Tensor:
        """Returns Mᵀ⋅y."""
        if y.shape[0] != self.rows():
            raise ValueError(f"Vector has size {y.shape[0]}, expected {self.rows()}")
        segments = []
        for j, size in enumerate(self._col_sizes):
            xj = y.new_zeros(size)
            for i in self._col_blocks[j]:
                xj = xj + self._blocks[(i, j)].T @ y[self._row_starts[i] : self._row_starts[i + 1]]
            segments.append(xj)
        if not segments:
            return y.new_zeros(0)
        return torch.cat(segments)

    def make_dense_matrix(self) -> torch.Tensor:
        """Dense copy, intended for tests and debugging."""
        dtype = next(iter(self._blocks.values())).dtype if self._blocks else torch.float64
        M = torch.zeros(self.rows(), self.cols(), dtype=dtype)
        for (i, j), block in self._blocks.items():
            M[self._row_starts[i] : self._row_starts[i + 1], self._col_starts[j] : self._col_starts[j + 1]] = block
        return M


def _starts(sizes: Sequence[int]) -> List[int]:
    starts = [0]
    for s in sizes:
        starts.append(starts[-1] + s)
    return starts


__all__ = ["BlockSparseMatrix"]
