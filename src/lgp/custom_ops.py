"""Custom operation registration and helpers."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from .enums import BRANCH_OPS, SOURCE_READING_OPS, WRITING_OPS, Operation


@dataclass(frozen=True)
class CustomOperation:
    """Metadata describing a user-registered operation.

    Arity 1 operations compute ``r[target] = f(operand)``; arity 2 operations
    compute ``r[target] = f(r[source], operand)``.
    """

    code: int
    name: str
    arity: int
    function: Callable[..., float]
    doc: str = ""


class CustomOperationManager:
    """Registry for ad-hoc operations."""

    def __init__(self, base_code: int = 1000):
        self.base_code = base_code
        self._ops_by_code: Dict[int, CustomOperation] = {}
        self._name_to_code: Dict[str, int] = {}
        self._next_code = base_code

    def register(
        self,
        name: str,
        function: Callable[..., float],
        *,
        arity: int = 2,
        code: Optional[int] = None,
        doc: str = "",
    ) -> int:
        """Register a new custom operation and return its opcode."""
        if arity not in (1, 2):
            raise ValueError("Custom operations support arity 1 or 2.")

        clean_name = name.strip()
        if not clean_name:
            raise ValueError("Operation name must be a non-empty string.")
        name_key = clean_name.upper()
        if name_key in Operation.__members__:
            raise ValueError(f"'{clean_name}' shadows a built-in operation.")
        if name_key in self._name_to_code:
            raise ValueError(f"Operation '{clean_name}' is already registered.")

        if code is None:
            code = self._next_code
            self._next_code += 1
        else:
            code = int(code)
            if code < self.base_code:
                raise ValueError(
                    f"Custom operation codes must be >= {self.base_code}; received {code}."
                )
            if code >= self._next_code:
                self._next_code = code + 1
        if code in self._ops_by_code:
            raise ValueError(f"Opcode {code} is already in use.")

        positional = [
            p
            for p in inspect.signature(function).parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
        required = [p for p in positional if p.default is inspect.Parameter.empty]
        if len(positional) < arity:
            raise ValueError(
                f"Function '{clean_name}' accepts fewer positional arguments than arity {arity}."
            )
        if len(required) > arity:
            raise ValueError(
                f"Function '{clean_name}' requires more positional arguments than arity {arity}."
            )

        self._ops_by_code[code] = CustomOperation(
            code=code, name=clean_name, arity=arity, function=function, doc=doc
        )
        self._name_to_code[name_key] = code
        return code

    def unregister(self, name: str) -> None:
        """Remove a registered operation by name."""
        code = self._name_to_code.pop(name.strip().upper(), None)
        if code is not None:
            self._ops_by_code.pop(code, None)

    def get(self, code: Union[int, Operation]) -> Optional[CustomOperation]:
        """Retrieve metadata for a custom operation code."""
        try:
            return self._ops_by_code[int(code)]
        except (KeyError, ValueError, TypeError):
            return None

    def get_code_by_name(self, name: str) -> Optional[int]:
        """Return opcode for a registered operation name if available."""
        return self._name_to_code.get(name.strip().upper())

    def codes(self) -> List[int]:
        return sorted(self._ops_by_code)


custom_operations = CustomOperationManager()


def register_custom_operation(
    name: str,
    function: Callable[..., float],
    *,
    arity: int = 2,
    code: Optional[int] = None,
    doc: str = "",
) -> int:
    """
    Public helper for registering ad-hoc operations.

    The callable receives one or two floats (matching ``arity``) and returns a
    float. Exceptions raised by it count as a result of 0.0.
    """
    return custom_operations.register(name, function, arity=arity, code=code, doc=doc)


def resolve_operation_name(op_code: int) -> str:
    """Return a readable name for built-in or custom operations."""
    custom_op = custom_operations.get(op_code)
    if custom_op:
        return custom_op.name.upper()
    try:
        return Operation(op_code).name
    except ValueError:
        return f"CUSTOM_{op_code}"


def resolve_operation_code(name: Union[str, int, Operation]) -> int:
    """Resolve a built-in or registered operation name to its opcode."""
    if isinstance(name, Operation):
        return int(name)
    if isinstance(name, int):
        if custom_operations.get(name) is None:
            Operation(name)
        return name
    key = str(name).strip().upper()
    if key in Operation.__members__:
        return int(Operation[key])
    code = custom_operations.get_code_by_name(key)
    if code is None:
        raise ValueError(f"Unknown operation '{name}'.")
    return code


def reads_source(op_code: int) -> bool:
    """Whether the operation reads its source register."""
    custom_op = custom_operations.get(op_code)
    if custom_op:
        return custom_op.arity == 2
    try:
        op = Operation(op_code)
    except ValueError:
        return False
    return op in SOURCE_READING_OPS


def is_branch(op_code: int) -> bool:
    try:
        return Operation(op_code) in BRANCH_OPS
    except ValueError:
        return False


def writes_target(op_code: int) -> bool:
    """Whether the operation writes its target register."""
    if custom_operations.get(op_code):
        return True
    try:
        op = Operation(op_code)
    except ValueError:
        return False
    return op in WRITING_OPS


__all__ = [
    "CustomOperation",
    "CustomOperationManager",
    "custom_operations",
    "register_custom_operation",
    "resolve_operation_name",
    "resolve_operation_code",
    "reads_source",
    "is_branch",
    "writes_target",
]
