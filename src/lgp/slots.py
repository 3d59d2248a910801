"""Slot layout constants and slot helper utilities."""

from typing import Union


SLOT_COUNT = 5

SLOT_OPERATION = 0
SLOT_TARGET = 1
SLOT_SOURCE = 2
SLOT_MODE = 3
SLOT_OPERAND = 4

SLOT_NAMES = [
    "op",
    "target",
    "source",
    "mode",
    "operand",
]

SLOT_NAME_TO_INDEX = {
    "op": SLOT_OPERATION,
    "operation": SLOT_OPERATION,
    "target": SLOT_TARGET,
    "source": SLOT_SOURCE,
    "mode": SLOT_MODE,
    "operand": SLOT_OPERAND,
}


def slot_name(slot_index: int) -> str:
    """Return a readable slot name for an index."""
    if 0 <= slot_index < len(SLOT_NAMES):
        return SLOT_NAMES[slot_index]
    return f"slot_{slot_index}"


def resolve_slot_index(slot: Union[int, str]) -> int:
    """Resolve slot index from a numeric id or a slot name."""
    if isinstance(slot, int):
        if not 0 <= slot < SLOT_COUNT:
            raise ValueError(f"Slot index {slot} outside [0, {SLOT_COUNT}).")
        return slot
    if isinstance(slot, str):
        key = slot.strip().lower()
        if key in SLOT_NAME_TO_INDEX:
            return SLOT_NAME_TO_INDEX[key]
        raise ValueError(f"Unknown slot name '{slot}'.")
    raise TypeError("Slot identifier must be an int or str.")


__all__ = [
    "SLOT_COUNT",
    "SLOT_OPERATION",
    "SLOT_TARGET",
    "SLOT_SOURCE",
    "SLOT_MODE",
    "SLOT_OPERAND",
    "SLOT_NAMES",
    "SLOT_NAME_TO_INDEX",
    "slot_name",
    "resolve_slot_index",
]
