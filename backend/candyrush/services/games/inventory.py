"""Inventory tracking: derive remaining stock and check allocations
against supply. Nothing here mutates the inventory it is given."""

from collections import OrderedDict
from typing import Dict, Iterable, Mapping, Tuple

from .entities import CandyType, InventoryValidation


def allocated_totals(allocations: Mapping[str, Mapping[str, int]]) -> Dict[str, int]:
    """Sum each candy's allocated quantity across all children."""
    totals: Dict[str, int] = OrderedDict()
    for allocation in allocations.values():
        for name, quantity in (allocation or {}).items():
            totals[name] = totals.get(name, 0) + quantity
    return totals


def validate_inventory(candies: Iterable[CandyType],
                       allocations: Mapping[str, Mapping[str, int]]) -> InventoryValidation:
    candies = tuple(candies)
    totals = allocated_totals(allocations)
    errors = []
    for candy in candies:
        allocated = totals.get(candy.name, 0)
        if allocated > candy.quantity:
            errors.append(
                f'Not enough {candy.name}: {allocated} allocated but only {candy.quantity} available'
            )
    known = {c.name for c in candies}
    for name, allocated in totals.items():
        if name not in known and allocated > 0:
            errors.append(f'Not enough {name}: {allocated} allocated but only 0 available')
    return InventoryValidation(valid=not errors, errors=tuple(errors))


def remaining_candies(candies: Iterable[CandyType],
                      allocations: Mapping[str, Mapping[str, int]]) -> Tuple[CandyType, ...]:
    totals = allocated_totals(allocations)
    return tuple(
        c.with_quantity(max(0, c.quantity - totals.get(c.name, 0))) for c in candies
    )


def is_over_allocated(candies: Iterable[CandyType],
                      allocations: Mapping[str, Mapping[str, int]]) -> bool:
    return not validate_inventory(candies, allocations).valid
