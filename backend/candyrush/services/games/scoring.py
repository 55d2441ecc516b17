import math
from typing import Dict, Iterable, Mapping, Optional, Sequence

from .entities import (
    DEFAULT_CANDY_EMOJI,
    CandyType,
    Child,
    ChildResult,
    RoundResult,
    ScoreBreakdown,
    normalize_allocation,
)


POINTS_REGULAR_CHILD = 1
POINTS_SPECIAL_CHILD = 2
POINTS_INCORRECT_PER_CANDY = 0.5
POINTS_HATE_PENALTY = -1
POINTS_NONE = 0

TIME_UP_MESSAGE = "⏰ Time's up!"


def points_per_correct(child: Child) -> int:
    return POINTS_SPECIAL_CHILD if child.is_special else POINTS_REGULAR_CHILD


def _emoji_lookup(candies: Optional[Iterable[CandyType]]) -> Dict[str, str]:
    return {c.name: c.emoji for c in (candies or ()) if c.emoji}


def _correct_candies(child: Child, allocation: Mapping[str, int]) -> int:
    count = 0
    for request in child.requests:
        # hated candy only ever earns the penalty
        if child.hated_candy and request.candy_name == child.hated_candy:
            continue
        count += min(request.quantity, allocation.get(request.candy_name, 0))
    return count


def _incorrect_candies(child: Child, allocation: Mapping[str, int]) -> int:
    requested = {r.candy_name: r.quantity for r in child.requests}
    count = 0
    for name, quantity in allocation.items():
        if child.hated_candy and name == child.hated_candy:
            continue
        if name in requested:
            count += max(0, quantity - requested[name])
        else:
            count += quantity
    return count


def _is_exact_match(child: Child, allocation: Mapping[str, int]) -> bool:
    if len(child.requests) != len(allocation):
        return False
    return all(allocation.get(r.candy_name) == r.quantity for r in child.requests)


def score_child(child: Child, allocation, candies: Optional[Iterable[CandyType]] = None) -> ChildResult:
    """Score the candy given to one child.

    Exact match: every requested candy in the requested amount and nothing
    else, worth 1 point per candy (2 for special children). Anything else
    earns full points for the matching portion, 0.5 per wrong or excess
    candy, and -1 per hated candy. Giving nothing scores 0.

    ``candies`` only feeds the emoji shown in the breakdown.
    """
    allocation = normalize_allocation(allocation)
    emojis = _emoji_lookup(candies)
    unit = points_per_correct(child)

    hated_given = allocation.get(child.hated_candy, 0) if child.hated_candy else 0
    hate_penalty = hated_given * POINTS_HATE_PENALTY if hated_given > 0 else 0

    correct = _correct_candies(child, allocation)
    incorrect = _incorrect_candies(child, allocation)
    correct_points = correct * unit
    incorrect_points = incorrect * POINTS_INCORRECT_PER_CANDY
    hate_penalty_points = hated_given * POINTS_HATE_PENALTY

    breakdown = ScoreBreakdown(
        requested=tuple(
            {'candyName': r.candy_name, 'quantity': r.quantity,
             'emoji': emojis.get(r.candy_name, DEFAULT_CANDY_EMOJI)}
            for r in child.requests
        ),
        allocated=tuple(
            {'candyName': name, 'quantity': qty,
             'emoji': emojis.get(name, DEFAULT_CANDY_EMOJI)}
            for name, qty in allocation.items()
        ),
        correct_candies=correct,
        incorrect_candies=incorrect,
        hated_candies_given=hated_given,
        correct_points=correct_points,
        incorrect_points=incorrect_points,
        hate_penalty_points=hate_penalty_points,
        total_points=correct_points + incorrect_points + hate_penalty_points,
        is_special=child.is_special,
        points_per_correct=unit,
    )

    if _is_exact_match(child, allocation):
        base = child.total_requested * unit
        if hate_penalty == 0:
            return ChildResult(child.id, True, False, base, 0, breakdown)
        # a hated candy downgrades an otherwise perfect allocation
        return ChildResult(child.id, False, True, base + hate_penalty, hate_penalty, breakdown)

    if any(qty > 0 for qty in allocation.values()):
        return ChildResult(
            child.id, False, True,
            correct_points + incorrect_points + hate_penalty_points,
            hate_penalty, breakdown,
        )

    return ChildResult(child.id, False, False, POINTS_NONE, 0, breakdown)


def score_round(children: Sequence[Child], allocations: Optional[Mapping[str, Mapping[str, int]]],
                candies: Optional[Iterable[CandyType]] = None) -> RoundResult:
    """Score every child in a round. ``round_number`` is left at 0 for the caller to stamp."""
    allocations = allocations or {}
    candies = tuple(candies or ())
    results = tuple(score_child(c, allocations.get(c.id), candies) for c in children)
    return RoundResult(
        round_number=0,
        points_earned=sum(r.points_earned for r in results),
        child_results=results,
    )


def max_round_points(children: Iterable[Child]) -> int:
    """Upper bound for a round, assuming no hated candy is ever given."""
    return sum(c.total_requested * points_per_correct(c) for c in children)


def round_percentage(result: RoundResult, children: Iterable[Child]) -> int:
    max_points = max_round_points(children)
    if max_points == 0:
        return 0
    # half-up, round() would use banker's rounding
    return math.floor(100 * result.points_earned / max_points + 0.5)


def round_feedback(percentage: int) -> str:
    if percentage == 100:
        return '🎃 Perfect! All children got exactly what they wanted!'
    if percentage >= 80:
        return '👻 Excellent! Almost perfect!'
    if percentage >= 60:
        return '🦇 Good job! Most children are happy!'
    if percentage >= 40:
        return '🕷️ Not bad! Keep trying!'
    if percentage >= 20:
        return '💀 Some children got candy at least!'
    return '🎃 Better luck next time!'


def count_correct(results: Iterable[ChildResult]) -> int:
    return sum(1 for r in results if r.is_correct)


def count_partial(results: Iterable[ChildResult]) -> int:
    return sum(1 for r in results if r.is_partial)


def count_empty(results: Iterable[ChildResult]) -> int:
    return sum(1 for r in results if not r.is_correct and not r.is_partial)


def summarize_round(result: RoundResult, children: Sequence[Child]) -> dict:
    return {
        'pointsEarned': result.points_earned,
        'maxPoints': max_round_points(children),
        'percentage': round_percentage(result, children),
        'correctCount': count_correct(result.child_results),
        'partialCount': count_partial(result.child_results),
        'emptyCount': count_empty(result.child_results),
    }
