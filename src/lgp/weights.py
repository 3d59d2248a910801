"""Operation weight profiles used when sampling opcodes."""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Sequence, Set, Union

import numpy as np

from .custom_ops import resolve_operation_code
from .enums import BINARY_OPS, BRANCH_OPS, UNARY_OPS, Operation

BUILTIN_GROUPS: Dict[str, Sequence[Operation]] = {
    "binary": BINARY_OPS,
    "unary": UNARY_OPS,
    "branch": BRANCH_OPS,
}


class OperationWeights:
    """Optional weights for operations and named groups of operations."""

    def __init__(self, default_weight: float = 1.0):
        self.default_weight = float(default_weight)
        self._op_weights: Dict[int, float] = {}
        self._groups: Dict[str, Set[int]] = {
            name: {int(op) for op in ops} for name, ops in BUILTIN_GROUPS.items()
        }
        self._group_weights: Dict[str, float] = {}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, float]]) -> "OperationWeights":
        """Build weights from ``{"ADD": 2.0, "branch": 0.5}``-style mappings.

        Keys naming a group set the group weight; other keys name operations.
        """
        weights = cls()
        for key, value in (data or {}).items():
            clean = key.strip()
            if clean.lower() in weights._groups:
                weights.set_group_weight(clean.lower(), value)
            else:
                weights.set_operation_weight(clean, value)
        return weights

    @staticmethod
    def _normalize_group(name: str) -> str:
        clean = name.strip()
        if not clean:
            raise ValueError("Group name must be a non-empty string.")
        return clean

    def set_operation_weight(
        self, op: Union[int, str, Operation], weight: Optional[float]
    ) -> None:
        """Assign or clear an operation-specific weight."""
        code = resolve_operation_code(op)
        if weight is None:
            self._op_weights.pop(code, None)
            return
        if weight < 0:
            raise ValueError("Operation weights must be non-negative.")
        self._op_weights[code] = float(weight)

    def set_group(
        self,
        name: str,
        ops: Iterable[Union[int, str, Operation]],
        *,
        weight: Optional[float] = None,
    ) -> None:
        """Define or replace a group of operations, optionally setting its weight."""
        key = self._normalize_group(name)
        self._groups[key] = {resolve_operation_code(op) for op in ops}
        if weight is not None:
            self.set_group_weight(key, weight)

    def set_group_weight(self, name: str, weight: Optional[float]) -> None:
        """Assign or clear a group weight."""
        key = self._normalize_group(name)
        if weight is None:
            self._group_weights.pop(key, None)
            return
        if weight < 0:
            raise ValueError("Group weights must be non-negative.")
        self._group_weights[key] = float(weight)

    def group_members(self, name: str) -> Set[int]:
        return set(self._groups.get(self._normalize_group(name), set()))

    def resolve_weight(self, op_code: int) -> float:
        """
        Resolve a weight for an operation code: explicit weight first, then the
        mean of the weights of groups containing it, then the default.
        """
        code = int(op_code)
        if code in self._op_weights:
            return self._op_weights[code]

        group_weights = [
            weight
            for name, members in self._groups.items()
            if code in members and (weight := self._group_weights.get(name)) is not None
        ]
        if group_weights:
            return sum(group_weights) / len(group_weights)
        return self.default_weight

    def probabilities(self, op_codes: Sequence[int]) -> np.ndarray:
        """Normalized sampling distribution over ``op_codes``."""
        raw = np.array([self.resolve_weight(code) for code in op_codes], dtype=np.float64)
        total = raw.sum()
        if total <= 0:
            return np.full(len(op_codes), 1.0 / len(op_codes))
        return raw / total


__all__ = ["OperationWeights", "BUILTIN_GROUPS"]
