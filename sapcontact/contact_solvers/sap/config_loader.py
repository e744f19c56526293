"""YAML loader for SapModel parameters."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping

import yaml  # type: ignore[import-untyped]

from .configs import SapModelParameters


def _load_parameters(data: Mapping[str, Any] | None) -> SapModelParameters:
    data = data or {}
    params = SapModelParameters(
        dtype=str(data.get("dtype", "float64")),
        symmetry_tolerance=float(data.get("symmetry_tolerance", 1e-12)),
        check_positive_definite=bool(data.get("check_positive_definite", True)),
        allow_empty_model=bool(data.get("allow_empty_model", False)),
    )
    # Fail on unknown dtypes while loading rather than at model construction.
    params.torch_dtype()
    return params


def load_sap_model_parameters(path: Path) -> SapModelParameters:
    """Load SapModelParameters from a YAML file.

    The parameters may sit at the top level of the document or under a
    ``sap_model`` key, so they can share a file with other settings.
    """
    with Path(path).open("r", encoding="utf-8") as fp:
        raw: Dict[str, Any] = yaml.safe_load(fp) or {}
    if "sap_model" in raw:
        return _load_parameters(raw["sap_model"])
    return _load_parameters(raw)


__all__ = ["load_sap_model_parameters"]
