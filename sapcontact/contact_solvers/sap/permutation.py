"""Partial permutations between an original and a reduced index space."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

import numpy as np
import torch

from .tensor_utils import as_tensor


class PartialPermutation:
    """Maps a domain of size n onto a permuted domain of size m <= n.

    Entry ``i`` of the domain maps to ``permuted_index[i]`` in the permuted
    domain, or does not participate when ``permuted_index[i] == -1``. The
    participating entries must cover ``[0, m)`` exactly once.
    """

    def __init__(self, permuted_index: Sequence[int]) -> None:
        self._permuted_index: List[int] = [int(i) for i in permuted_index]
        m = sum(1 for i in self._permuted_index if i >= 0)
        domain_index = [-1] * m
        for i, ip in enumerate(self._permuted_index):
            if ip < -1 or ip >= m:
                raise ValueError(
                    f"Permuted index {ip} for entry {i} is outside [0, {m}) and is not -1"
                )
            if ip == -1:
                continue
            if domain_index[ip] != -1:
                raise ValueError(
                    f"Entries {domain_index[ip]} and {i} both map to permuted index {ip}"
                )
            domain_index[ip] = i
        self._domain_index = domain_index
        self._domain_index_tensor = torch.tensor(domain_index, dtype=torch.long)

    @classmethod
    def identity(cls, size: int) -> "PartialPermutation":
        return cls(list(range(size)))

    def domain_size(self) -> int:
        return len(self._permuted_index)

    def permuted_domain_size(self) -> int:
        return len(self._domain_index)

    def permuted_index(self, i: int) -> int:
        """Index of domain entry i in the permuted domain, -1 if it does not participate."""
        if not 0 <= i < self.domain_size():
            raise ValueError(f"Index {i} out of range for domain of size {self.domain_size()}")
        return self._permuted_index[i]

    def domain_index(self, i_permuted: int) -> int:
        if not 0 <= i_permuted < self.permuted_domain_size():
            raise ValueError(
                f"Index {i_permuted} out of range for permuted domain of size "
                f"{self.permuted_domain_size()}"
            )
        return self._domain_index[i_permuted]

    def participates(self, i: int) -> bool:
        return self.permuted_index(i) >= 0

    def apply(self, x: Any) -> Any:
        """Extracts the participating entries of x in permuted order.

        Lists and tuples return a list with the same (unmodified) elements.
        Arrays and tensors are permuted along their first dimension and returned
        as tensors; gradients flow through the permutation.
        """
        if isinstance(x, (list, tuple)):
            self._check_size(len(x), self.domain_size(), "x")
            return [x[i] for i in self._domain_index]
        x = as_tensor(x, dtype=None)
        self._check_size(x.shape[0] if x.dim() > 0 else 0, self.domain_size(), "x")
        return x.index_select(0, self._domain_index_tensor.to(x.device))

    def apply_inverse(self, x_permuted: Any, x: Optional[Any] = None) -> Any:
        """Scatters x_permuted back into the original domain.

        Non-participating entries are taken from x when given, otherwise they
        are None (lists) or zero (tensors).
        """
        if isinstance(x_permuted, (list, tuple)):
            self._check_size(len(x_permuted), self.permuted_domain_size(), "x_permuted")
            if x is None:
                out: List[Any] = [None] * self.domain_size()
            else:
                self._check_size(len(x), self.domain_size(), "x")
                out = list(x)
            for ip, i in enumerate(self._domain_index):
                out[i] = x_permuted[ip]
            return out
        x_permuted = as_tensor(x_permuted, dtype=None)
        self._check_size(
            x_permuted.shape[0] if x_permuted.dim() > 0 else 0,
            self.permuted_domain_size(),
            "x_permuted",
        )
        if x is None:
            base = x_permuted.new_zeros((self.domain_size(),) + tuple(x_permuted.shape[1:]))
        else:
            base = as_tensor(x, dtype=x_permuted.dtype)
            self._check_size(base.shape[0] if base.dim() > 0 else 0, self.domain_size(), "x")
        return base.index_copy(0, self._domain_index_tensor.to(base.device), x_permuted)

    def expand_blocks(self, block_sizes: Sequence[int]) -> "PartialPermutation":
        """Element-wise permutation induced by permuting contiguous blocks.

        ``block_sizes[i]`` is the number of elements of domain entry i. The
        blocks keep their internal order; only their placement changes.
        """
        self._check_size(len(block_sizes), self.domain_size(), "block_sizes")
        starts = np.concatenate([[0], np.cumsum(block_sizes, dtype=int)])
        permuted_index = [-1] * int(starts[-1])
        offset = 0
        for i in self._domain_index:
            size = int(block_sizes[i])
            for k in range(size):
                permuted_index[int(starts[i]) + k] = offset + k
            offset += size
        return PartialPermutation(permuted_index)

    @staticmethod
    def _check_size(actual: int, expected: int, name: str) -> None:
        if actual != expected:
            raise ValueError(f"Size of {name} is {actual}, expected {expected}")

    def __repr__(self) -> str:
        return (
            f"PartialPermutation(domain_size={self.domain_size()}, "
            f"permuted_domain_size={self.permuted_domain_size()})"
        )


__all__ = ["PartialPermutation"]
