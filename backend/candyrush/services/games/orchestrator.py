"""Round orchestration for a single play session.

A session moves through ``loading -> ready -> submitting -> feedback`` and
then either back to ``ready`` for the next round or on to ``game_over``.
Every transition happens under one re-entrant lock, so a timer expiry
racing a manual submit scores the round once.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .entities import (
    Allocation,
    AllocationError,
    CandyRushError,
    CandyType,
    ConfigError,
    GameConfig,
    GameRound,
    RoundResult,
    allocation_to_list,
    check_quantity,
    normalize_allocation,
)
from .inventory import remaining_candies, validate_inventory
from .scoring import TIME_UP_MESSAGE, round_feedback, round_percentage, score_round, summarize_round
from .timer import RoundTimer


logger = logging.getLogger(__name__)

SAVE_FAILED_WARNING = 'Could not save your score. Check your connection.'


class RoundState(str, Enum):
    LOADING = 'loading'
    READY = 'ready'
    SUBMITTING = 'submitting'
    FEEDBACK = 'feedback'
    GAME_OVER = 'game_over'
    LOAD_ERROR = 'load_error'


class GameStateError(CandyRushError):
    """The requested action is not allowed in the current state."""


@dataclass(frozen=True)
class SubmitOutcome:
    accepted: bool
    trigger: str = 'manual'
    ignored: bool = False
    round_result: Optional[RoundResult] = None
    percentage: int = 0
    message: str = ''
    errors: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            'accepted': self.accepted,
            'ignored': self.ignored,
            'trigger': self.trigger,
            'percentage': self.percentage,
            'message': self.message,
            'errors': list(self.errors),
            'roundResult': self.round_result.to_dict() if self.round_result else None,
        }


class RoundOrchestrator:
    def __init__(self, nickname: str = 'Player', score_store=None, code: Optional[str] = None):
        self.code = code
        self.nickname = nickname
        self.score_store = score_store
        self.state = RoundState.LOADING
        self.config: Optional[GameConfig] = None
        self.load_error: Optional[str] = None
        self.round_index = 0
        self.allocations: Dict[str, Allocation] = {}
        self.timer: Optional[RoundTimer] = None
        self.score = 0
        self.history: List[RoundResult] = []
        self.feedback: Optional[dict] = None
        self.notice: Optional[str] = None
        self.saved: Optional[bool] = None
        self.save_warning: Optional[str] = None
        self._lock = threading.RLock()

    # ---- read-only views ----

    @property
    def current_round(self) -> Optional[GameRound]:
        if not self.config or self.state in (RoundState.LOADING, RoundState.LOAD_ERROR):
            return None
        return self.config.rounds[self.round_index]

    @property
    def round_number(self) -> int:
        rnd = self.current_round
        return rnd.round_number if rnd else 0

    @property
    def total_rounds(self) -> int:
        return len(self.config.rounds) if self.config else 0

    @property
    def rounds_completed(self) -> int:
        return len(self.history)

    def remaining(self) -> Tuple[CandyType, ...]:
        rnd = self.current_round
        if rnd is None:
            return ()
        return remaining_candies(rnd.initial_candies, self.allocations)

    # ---- transitions ----

    def load(self, loader: Callable[[], GameConfig]) -> RoundState:
        """Run ``loader`` once. ``ConfigError`` ends in the terminal load_error state."""
        with self._lock:
            if self.state != RoundState.LOADING:
                return self.state
            try:
                config = loader()
            except ConfigError as exc:
                self.state = RoundState.LOAD_ERROR
                self.load_error = str(exc)
                logger.error(f"[load-error] session={self.code} {exc}")
                return self.state
            self.config = config
            self._enter_round(0)
            logger.info(f"[session-ready] session={self.code} rounds={self.total_rounds}")
            return self.state

    def _enter_round(self, index: int) -> None:
        self.round_index = index
        rnd = self.config.rounds[index]
        self.allocations = {child.id: {} for child in rnd.children}
        self.timer = RoundTimer(rnd.time_limit)
        self.feedback = None
        self.notice = None
        self.state = RoundState.READY

    def set_allocation(self, child_id: str, raw) -> Tuple[CandyType, ...]:
        """Replace one child's allocation and return the remaining stock."""
        with self._lock:
            if self.state != RoundState.READY:
                raise GameStateError('Allocations can only be changed while the round is open')
            rnd = self.current_round
            if rnd.child(child_id) is None:
                raise AllocationError(f'Unknown child "{child_id}"')
            allocation = normalize_allocation(raw)
            known = {c.name for c in rnd.initial_candies}
            for name, quantity in allocation.items():
                if name not in known:
                    raise AllocationError(f'Unknown candy "{name}"')
                check_quantity(name, quantity)
            updated = dict(self.allocations)
            updated[child_id] = allocation
            self.allocations = updated
            self.notice = None
            return self.remaining()

    def submit(self, trigger: str = 'manual', round_number: Optional[int] = None) -> SubmitOutcome:
        with self._lock:
            if self.state != RoundState.READY or (
                round_number is not None and round_number != self.round_number
            ):
                logger.info(
                    f"[submit-ignored] session={self.code} trigger={trigger} state={self.state.value} "
                    f"round={self.round_number} expected_round={round_number}"
                )
                return SubmitOutcome(accepted=False, trigger=trigger, ignored=True)

            self.state = RoundState.SUBMITTING
            rnd = self.current_round
            validation = validate_inventory(rnd.initial_candies, self.allocations)
            if not validation.valid:
                self.notice = validation.errors[0]
                self.state = RoundState.READY
                logger.info(
                    f"[round-reject] session={self.code} round={rnd.round_number} trigger={trigger} "
                    f"errors={len(validation.errors)}"
                )
                return SubmitOutcome(
                    accepted=False, trigger=trigger, message=self.notice, errors=validation.errors
                )

            result = score_round(rnd.children, self.allocations, rnd.initial_candies).stamped(rnd.round_number)
            self.history.append(result)
            self.score += result.points_earned
            percentage = round_percentage(result, rnd.children)
            message = TIME_UP_MESSAGE if trigger == 'timer' else round_feedback(percentage)
            self.feedback = {
                'roundNumber': rnd.round_number,
                'isCorrect': percentage == 100,
                'percentage': percentage,
                'message': message,
                'summary': summarize_round(result, rnd.children),
                'result': result.to_dict(),
            }
            self.state = RoundState.FEEDBACK
            logger.info(
                f"[round-submit] session={self.code} round={rnd.round_number} trigger={trigger} "
                f"points={result.points_earned} percentage={percentage} score={self.score}"
            )
            return SubmitOutcome(
                accepted=True, trigger=trigger, round_result=result,
                percentage=percentage, message=message,
            )

    def tick(self, round_number: int, step: int = 1) -> Optional[SubmitOutcome]:
        """Advance the round timer; on expiry submit on the player's behalf."""
        with self._lock:
            if self.state != RoundState.READY or round_number != self.round_number or not self.timer:
                return None
            if self.timer.tick(step):
                logger.info(f"[timer-expire] session={self.code} round={round_number}")
                return self.submit(trigger='timer', round_number=round_number)
            return None

    def advance(self, round_number: Optional[int] = None) -> bool:
        """Leave the feedback state. Returns False when there was nothing to do."""
        with self._lock:
            if self.state != RoundState.FEEDBACK or (
                round_number is not None and round_number != self.round_number
            ):
                return False
            prev = self.round_number
            if self.round_index + 1 < self.total_rounds:
                self._enter_round(self.round_index + 1)
                logger.info(f"[round-advance] session={self.code} round {prev} -> {self.round_number}")
                return True
            self.state = RoundState.GAME_OVER
            logger.info(
                f"[game-over] session={self.code} score={self.score} rounds={self.rounds_completed}"
            )
            self._persist_final()
            return True

    def _persist_final(self) -> None:
        if self.score_store is None:
            return
        row = self.score_store.save_session(
            self.nickname, self.score, self.rounds_completed, self.total_rounds
        )
        self.saved = row is not None
        if not self.saved:
            self.save_warning = SAVE_FAILED_WARNING

    def final_results(self) -> Optional[dict]:
        if self.state != RoundState.GAME_OVER:
            return None
        return {
            'nickname': self.nickname,
            'finalScore': self.score,
            'roundsCompleted': self.rounds_completed,
            'totalRounds': self.total_rounds,
            'saved': self.saved,
            'saveWarning': self.save_warning,
        }

    def to_dict(self) -> dict:
        with self._lock:
            rnd = self.current_round
            remaining = self.remaining()
            return {
                'game_code': self.code,
                'nickname': self.nickname,
                'state': self.state.value,
                'load_error': self.load_error,
                'current_round': self.round_number,
                'total_rounds': self.total_rounds,
                'round': rnd.to_dict() if rnd else None,
                'allocations': {cid: allocation_to_list(a) for cid, a in self.allocations.items()},
                'remaining_candies': [c.to_dict() for c in remaining],
                'over_allocated': bool(rnd) and not validate_inventory(
                    rnd.initial_candies, self.allocations).valid,
                'score': self.score,
                'timer': self.timer.to_dict() if self.timer else None,
                'notice': self.notice,
                'feedback': self.feedback,
                'round_history': [
                    {'roundNumber': r.round_number, 'pointsEarned': r.points_earned}
                    for r in self.history
                ],
                'results': self.final_results(),
            }
