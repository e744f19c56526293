"""Tensor conversion shared by the SAP modules."""

from __future__ import annotations

from typing import Any, Optional

import numpy as np
import torch


def as_tensor(x: Any, dtype: Optional[torch.dtype] = torch.float64, copy: bool = False) -> torch.Tensor:
    """Converts arrays, sequences and tensors to a tensor of the given dtype.

    With ``dtype=None`` tensors keep their dtype and anything else becomes
    float64. Without ``copy``, a tensor that already has the right dtype is
    returned as is and float64 arrays may share memory with the result. With
    ``copy`` the result never shares memory with ``x``; tensors are cloned, so
    autograd and forward-mode derivatives still flow through.
    """
    if isinstance(x, torch.Tensor):
        if dtype is not None and x.dtype != dtype:
            return x.to(dtype)
        return x.clone() if copy else x
    array = np.asarray(x, dtype=float)
    dtype = dtype or torch.float64
    if copy:
        return torch.tensor(array, dtype=dtype)
    return torch.as_tensor(array, dtype=dtype)


__all__ = ["as_tensor"]
