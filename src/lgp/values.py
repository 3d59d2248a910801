"""Constant tables addressed by CONSTANT-mode operands."""

from typing import Optional, Sequence, Tuple


class ValueEnumerations:
    """Named constant tables a program can read from."""

    MATH_CONSTANTS = (0.0, 1.0, -1.0, 2.0, 0.5, 3.14159, 2.71828, 10.0)

    SMALL_INTEGERS = (0.0, 1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0)

    PROBABILITIES = (0.0, 0.1, 0.2, 0.25, 0.3, 0.4, 0.5, 0.6, 0.7, 0.75, 0.8, 0.9, 1.0)

    TABLES = {
        "math": MATH_CONSTANTS,
        "integers": SMALL_INTEGERS,
        "probabilities": PROBABILITIES,
    }

    @staticmethod
    def resolve(table: Optional[object] = None) -> Tuple[float, ...]:
        """Resolve a table name or an explicit sequence into a constant tuple."""
        if table is None:
            return ValueEnumerations.MATH_CONSTANTS
        if isinstance(table, str):
            key = table.strip().lower()
            if key not in ValueEnumerations.TABLES:
                raise ValueError(
                    f"Unknown constant table '{table}'. "
                    f"Use one of {sorted(ValueEnumerations.TABLES)} or a list of numbers."
                )
            return ValueEnumerations.TABLES[key]
        if isinstance(table, Sequence):
            return tuple(float(v) for v in table)
        raise TypeError("Constants must be a table name or a sequence of numbers.")


__all__ = ["ValueEnumerations"]
