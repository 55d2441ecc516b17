"""Immutable value types shared by the scoring engine, inventory tracker
and round orchestrator.

Wire documents use camelCase keys; ``to_dict`` on each type produces that
shape so routes can hand results straight to ``jsonify``.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union


DEFAULT_CANDY_EMOJI = '🍬'

# candy name -> quantity; a missing name means nothing was given
Allocation = Dict[str, int]
AllocationInput = Union[Mapping[str, int], Iterable[Mapping[str, object]], None]


class CandyRushError(Exception):
    """Base class for game-domain errors."""


class ConfigError(CandyRushError):
    """The game configuration is missing, malformed or incompatible."""


class AllocationError(CandyRushError):
    """An allocation edit refers to unknown data or has a bad quantity."""


class NicknameError(CandyRushError):
    pass


@dataclass(frozen=True)
class CandyType:
    name: str
    quantity: int
    color: str = ''
    emoji: str = DEFAULT_CANDY_EMOJI

    def with_quantity(self, quantity: int) -> 'CandyType':
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'quantity': self.quantity,
            'color': self.color,
            'emoji': self.emoji,
        }


@dataclass(frozen=True)
class CandyRequest:
    candy_name: str
    quantity: int

    def to_dict(self) -> dict:
        return {'candyName': self.candy_name, 'quantity': self.quantity}


@dataclass(frozen=True)
class Child:
    id: str
    requests: Tuple[CandyRequest, ...]
    is_special: bool = False
    emoji: str = ''
    hated_candy: Optional[str] = None

    @property
    def total_requested(self) -> int:
        return sum(r.quantity for r in self.requests)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'isSpecial': self.is_special,
            'emoji': self.emoji,
            'hatedCandy': self.hated_candy,
            'requests': [r.to_dict() for r in self.requests],
        }


@dataclass(frozen=True)
class GameRound:
    round_number: int
    initial_candies: Tuple[CandyType, ...]
    children: Tuple[Child, ...]
    time_limit: int

    def child(self, child_id: str) -> Optional[Child]:
        for c in self.children:
            if c.id == child_id:
                return c
        return None

    def to_dict(self) -> dict:
        return {
            'roundNumber': self.round_number,
            'timeLimit': self.time_limit,
            'initialCandies': [c.to_dict() for c in self.initial_candies],
            'children': [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class GameSettings:
    total_rounds: int
    time_limit_per_round: int
    version: str


@dataclass(frozen=True)
class GameConfig:
    settings: GameSettings
    rounds: Tuple[GameRound, ...]


@dataclass(frozen=True)
class ScoreBreakdown:
    """Audit trail for one child's score. Purely derived."""

    requested: Tuple[dict, ...]
    allocated: Tuple[dict, ...]
    correct_candies: int
    incorrect_candies: int
    hated_candies_given: int
    correct_points: float
    incorrect_points: float
    hate_penalty_points: float
    total_points: float
    is_special: bool
    points_per_correct: int

    def to_dict(self) -> dict:
        return {
            'requested': [dict(r) for r in self.requested],
            'allocated': [dict(a) for a in self.allocated],
            'correctCandies': self.correct_candies,
            'incorrectCandies': self.incorrect_candies,
            'hatedCandiesGiven': self.hated_candies_given,
            'correctPoints': self.correct_points,
            'incorrectPoints': self.incorrect_points,
            'hatePenaltyPoints': self.hate_penalty_points,
            'totalPoints': self.total_points,
            'isSpecial': self.is_special,
            'pointsPerCorrect': self.points_per_correct,
        }


@dataclass(frozen=True)
class ChildResult:
    child_id: str
    is_correct: bool
    is_partial: bool
    points_earned: float
    hate_penalty: float
    breakdown: ScoreBreakdown

    def to_dict(self) -> dict:
        return {
            'childId': self.child_id,
            'isCorrect': self.is_correct,
            'isPartial': self.is_partial,
            'pointsEarned': self.points_earned,
            'hatePenalty': self.hate_penalty,
            'breakdown': self.breakdown.to_dict(),
        }


@dataclass(frozen=True)
class RoundResult:
    round_number: int
    points_earned: float
    child_results: Tuple[ChildResult, ...] = field(default_factory=tuple)

    def stamped(self, round_number: int) -> 'RoundResult':
        return replace(self, round_number=round_number)

    def to_dict(self) -> dict:
        return {
            'roundNumber': self.round_number,
            'pointsEarned': self.points_earned,
            'childResults': [r.to_dict() for r in self.child_results],
        }


@dataclass(frozen=True)
class InventoryValidation:
    valid: bool
    errors: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {'valid': self.valid, 'errors': list(self.errors)}


def normalize_allocation(raw: AllocationInput) -> Allocation:
    """Return the canonical allocation mapping for ``raw``.

    Accepts a ``{name: quantity}`` mapping or the wire list form
    ``[{"candyName": ..., "quantity": ...}]``. Zero entries are dropped.
    Quantities are not range-checked here; see ``check_quantity``.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        pairs = list(raw.items())
    elif isinstance(raw, (list, tuple)):
        pairs = []
        seen = set()
        for entry in raw:
            if not isinstance(entry, Mapping) or 'candyName' not in entry:
                raise AllocationError('Each allocation entry needs a candyName and quantity')
            name = entry.get('candyName')
            if not isinstance(name, str):
                raise AllocationError('candyName must be a string')
            if name in seen:
                raise AllocationError(f'Duplicate allocation entry for "{name}"')
            seen.add(name)
            pairs.append((name, entry.get('quantity', 0)))
    else:
        raise AllocationError('Allocation must be a list of candy entries or a name-to-quantity mapping')

    allocation: Allocation = {}
    for name, quantity in pairs:
        if not isinstance(name, str):
            raise AllocationError('candyName must be a string')
        # only a true integer zero is "absent"; False or 0.0 are left for check_quantity
        if type(quantity) is int and quantity == 0:
            continue
        allocation[name] = quantity
    return allocation


def check_quantity(candy_name: str, quantity: object) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise AllocationError(f'Quantity for "{candy_name}" must be a whole number')
    if quantity < 0:
        raise AllocationError(f'Quantity for "{candy_name}" cannot be negative')
    return quantity


def allocation_to_list(allocation: Mapping[str, int]) -> List[dict]:
    return [{'candyName': name, 'quantity': qty} for name, qty in allocation.items()]
