import time
from typing import Set, Tuple

from candyrush import socketio
from .orchestrator import RoundState
from .sessions import get_registry


_scheduled_timer_keys: Set[Tuple[str, int]] = set()


def emit_state_update(game_code: str) -> None:
    socketio.emit('state_update', {'game_code': game_code}, to=f"game:{game_code}", namespace='/ws')


def _scheduler_disabled(app) -> bool:
    return bool(app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'))


def _start(app, worker, *args) -> None:
    if app.config.get('TESTING'):
        worker(*args)
    else:
        socketio.start_background_task(worker, *args)


def schedule_round_timer(app, game_code: str) -> None:
    """Count down the current round of ``game_code`` in the background.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per (session, round)
    - On expiry the session submits itself; an accepted submission then
      schedules the feedback auto-advance
    """
    if _scheduler_disabled(app):
        return

    session = get_registry(app).get(game_code)
    if not session or session.state != RoundState.READY:
        return
    round_number = session.round_number
    key = (session.code, round_number)
    if key in _scheduled_timer_keys:
        app.logger.info(f"[timer-skip] game={session.code} round={round_number} already scheduled")
        return
    _scheduled_timer_keys.add(key)

    tick_sec = float(app.config.get('TIMER_TICK_SEC', 1))
    heartbeat = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
    app.logger.info(
        f"[timer-set] game={session.code} round={round_number} duration={session.timer.total}s"
    )

    def _worker(code: str, expected_round: int):
        try:
            with app.app_context():
                while True:
                    if tick_sec > 0:
                        time.sleep(tick_sec)
                    s = get_registry(app).get(code)
                    if (not s or s.round_number != expected_round or s.state != RoundState.READY
                            or s.timer.expired):
                        app.logger.info(f"[timer-abort] game={code} round={expected_round} round moved on")
                        return
                    outcome = s.tick(expected_round)
                    if heartbeat > 0 and s.timer.remaining % heartbeat == 0:
                        app.logger.info(
                            f"[timer-heartbeat] game={code} round={expected_round} remaining={s.timer.remaining}s"
                        )
                    socketio.emit(
                        'timer_tick', {'game_code': code, 'remaining': s.timer.remaining},
                        to=f"game:{code}", namespace='/ws'
                    )
                    if outcome is None:
                        continue
                    app.logger.info(
                        f"[timer-fire] game={code} round={expected_round} accepted={outcome.accepted} "
                        f"ignored={outcome.ignored}"
                    )
                    emit_state_update(code)
                    if outcome.accepted:
                        schedule_feedback_advance(app, code, expected_round)
                    # a rejected time-up submission leaves the round open for a manual submit
                    return
        finally:
            _scheduled_timer_keys.discard((code, expected_round))

    _start(app, _worker, session.code, round_number)


def schedule_feedback_advance(app, game_code: str, round_number: int) -> None:
    """Leave the feedback screen after FEEDBACK_DURATION_SEC."""
    if _scheduler_disabled(app):
        return
    delay = float(app.config.get('FEEDBACK_DURATION_SEC', 2))

    def _worker(code: str, expected_round: int):
        if delay > 0:
            time.sleep(delay)
        with app.app_context():
            s = get_registry(app).get(code)
            if not s:
                return
            if not s.advance(expected_round):
                app.logger.info(
                    f"[timer-abort] game={code} expected_round={expected_round} "
                    f"actual_round={s.round_number} state={s.state.value}"
                )
                return
            emit_state_update(code)
            if s.state == RoundState.READY:
                schedule_round_timer(app, code)

    _start(app, _worker, game_code, round_number)
