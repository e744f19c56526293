"""Configuration for building a SapModel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import torch


_DTYPES = {
    "float32": torch.float32,
    "float64": torch.float64,
}


@dataclass
class SapModelParameters:
    """Knobs controlling how a SapModel validates and stores problem data.

    The symmetry tolerance is relative to the largest entry of each dynamics
    block. Positive definiteness is checked with a Cholesky factorization, which
    the model needs anyway for the Delassus estimate.
    """

    dtype: str = "float64"
    symmetry_tolerance: float = 1e-12
    check_positive_definite: bool = True
    allow_empty_model: bool = False

    def torch_dtype(self) -> torch.dtype:
        if self.dtype not in _DTYPES:
            raise ValueError(f"Unsupported dtype '{self.dtype}', expected one of {sorted(_DTYPES)}")
        return _DTYPES[self.dtype]

    def as_dict(self) -> Dict[str, object]:
        return {
            "dtype": self.dtype,
            "symmetry_tolerance": self.symmetry_tolerance,
            "check_positive_definite": self.check_positive_definite,
            "allow_empty_model": self.allow_empty_model,
        }
