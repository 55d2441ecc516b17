import threading

import pytest

from candyrush.services.games.entities import AllocationError, ConfigError
from candyrush.services.games.orchestrator import (
    SAVE_FAILED_WARNING,
    GameStateError,
    RoundOrchestrator,
    RoundState,
)
from candyrush.services.games.scoring import TIME_UP_MESSAGE
from candyrush.services.games.timer import RoundTimer
from candyrush.services.games.validation import validate_game_config


class RecordingStore:
    def __init__(self, result=True):
        self.calls = []
        self.result = result

    def save_session(self, nickname, score, rounds_completed, total_rounds):
        self.calls.append((nickname, score, rounds_completed, total_rounds))
        return {'id': 1} if self.result else None


def ready_session(config_doc, store=None):
    session = RoundOrchestrator(nickname='Casper', score_store=store, code='ABCD')
    config = validate_game_config(config_doc)
    assert session.load(lambda: config) == RoundState.READY
    return session


def play_perfect_round_one(session):
    session.set_allocation('ghost', {'Lollipop': 3})
    session.set_allocation('witch', [{'candyName': 'Lollipop', 'quantity': 2},
                                     {'candyName': 'Chocolate', 'quantity': 1}])
    return session.submit()


def test_load_enters_first_round(config_doc):
    session = ready_session(config_doc)
    assert session.round_number == 1
    assert session.total_rounds == 2
    assert session.allocations == {'ghost': {}, 'witch': {}}
    assert session.timer.remaining == 3
    assert [c.quantity for c in session.remaining()] == [5, 4, 2]


def test_load_error_is_terminal():
    session = RoundOrchestrator(code='FAIL')

    def broken_loader():
        raise ConfigError('Missing version in gameSettings')

    assert session.load(broken_loader) == RoundState.LOAD_ERROR
    assert session.load_error == 'Missing version in gameSettings'
    assert session.submit().ignored is True
    assert session.current_round is None
    assert session.remaining() == ()
    assert session.to_dict()['state'] == 'load_error'


def test_allocation_edits_replace_wholesale_and_update_remaining(config_doc):
    session = ready_session(config_doc)
    remaining = session.set_allocation('ghost', {'Lollipop': 2, 'Chocolate': 1})
    assert [c.quantity for c in remaining] == [3, 3, 2]
    remaining = session.set_allocation('ghost', {'Lollipop': 1})
    assert session.allocations['ghost'] == {'Lollipop': 1}
    assert [c.quantity for c in remaining] == [4, 4, 2]
    session.set_allocation('ghost', {'Lollipop': 0})
    assert session.allocations['ghost'] == {}


def test_bad_allocation_edits_are_rejected(config_doc):
    session = ready_session(config_doc)
    with pytest.raises(AllocationError, match='Unknown child'):
        session.set_allocation('zombie', {'Lollipop': 1})
    with pytest.raises(AllocationError, match='Unknown candy'):
        session.set_allocation('ghost', {'Toffee': 1})
    with pytest.raises(AllocationError, match='negative'):
        session.set_allocation('ghost', {'Lollipop': -1})
    with pytest.raises(AllocationError, match='whole number'):
        session.set_allocation('ghost', {'Lollipop': 1.5})
    with pytest.raises(AllocationError, match='whole number'):
        session.set_allocation('ghost', {'Lollipop': False})
    with pytest.raises(AllocationError, match='whole number'):
        session.set_allocation('ghost', [{'candyName': 'Lollipop', 'quantity': 0.0}])
    with pytest.raises(AllocationError, match='candyName'):
        session.set_allocation('ghost', [{'candyName': ['Lollipop'], 'quantity': 1}])
    with pytest.raises(AllocationError, match='must be a list'):
        session.set_allocation('ghost', 5)
    with pytest.raises(AllocationError, match='Duplicate'):
        session.set_allocation('ghost', [{'candyName': 'Lollipop', 'quantity': 1},
                                         {'candyName': 'Lollipop', 'quantity': 2}])
    assert session.allocations['ghost'] == {}


def test_over_allocation_rejects_submit_without_side_effects(config_doc):
    session = ready_session(config_doc)
    session.set_allocation('ghost', {'Lollipop': 3})
    session.set_allocation('witch', {'Lollipop': 3})
    assert session.to_dict()['over_allocated'] is True

    outcome = session.submit()
    assert outcome.accepted is False
    assert outcome.ignored is False
    assert 'Lollipop' in outcome.errors[0]
    assert '6' in outcome.errors[0] and '5' in outcome.errors[0]
    assert session.state == RoundState.READY
    assert session.round_number == 1
    assert session.score == 0
    assert session.history == []
    assert session.notice == outcome.errors[0]
    # player keeps their edits and can fix them
    assert session.allocations['witch'] == {'Lollipop': 3}
    session.set_allocation('witch', {'Lollipop': 2, 'Chocolate': 1})
    assert session.notice is None
    assert session.submit().accepted is True


def test_perfect_round_scores_and_enters_feedback(config_doc):
    session = ready_session(config_doc)
    outcome = play_perfect_round_one(session)
    assert outcome.accepted is True
    assert outcome.percentage == 100
    assert 'Perfect' in outcome.message
    assert outcome.round_result.round_number == 1
    assert outcome.round_result.points_earned == 9
    assert session.state == RoundState.FEEDBACK
    assert session.score == 9
    assert session.feedback['isCorrect'] is True
    assert session.feedback['summary']['maxPoints'] == 9
    with pytest.raises(GameStateError):
        session.set_allocation('ghost', {'Lollipop': 1})


def test_double_submit_scores_once(config_doc):
    session = ready_session(config_doc)
    assert play_perfect_round_one(session).accepted is True
    again = session.submit()
    assert again.ignored is True
    assert session.score == 9
    assert len(session.history) == 1


def test_timer_expiry_submits_once(config_doc):
    session = ready_session(config_doc)
    session.set_allocation('ghost', {'Lollipop': 3})
    assert session.tick(1) is None
    assert session.tick(1) is None
    outcome = session.tick(1)
    assert outcome.accepted is True
    assert outcome.trigger == 'timer'
    assert outcome.message == TIME_UP_MESSAGE
    assert session.score == 3
    # the manual submit that lost the race is a no-op
    assert session.submit().ignored is True
    assert session.tick(1) is None
    assert session.score == 3


def test_stale_timer_callbacks_are_ignored(config_doc):
    session = ready_session(config_doc)
    assert session.tick(7) is None
    assert session.timer.remaining == 3
    assert session.submit(trigger='timer', round_number=2).ignored is True
    play_perfect_round_one(session)
    assert session.advance(round_number=2) is False
    assert session.advance(round_number=1) is True
    assert session.round_number == 2
    assert session.tick(1) is None
    assert session.timer.remaining == 2


def test_time_up_rejection_leaves_round_open(config_doc):
    session = ready_session(config_doc)
    session.set_allocation('ghost', {'Lollipop': 5})
    session.set_allocation('witch', {'Lollipop': 1})
    session.tick(1, step=3)
    assert session.state == RoundState.READY
    assert session.timer.expired is True
    assert 'Lollipop' in session.notice
    # expiry is signalled once only
    assert session.tick(1) is None
    session.set_allocation('ghost', {'Lollipop': 3})
    assert session.submit().accepted is True


def test_concurrent_submits_score_once(config_doc):
    session = ready_session(config_doc)
    session.set_allocation('ghost', {'Lollipop': 3})
    barrier = threading.Barrier(4)
    outcomes = []

    def fire(trigger):
        barrier.wait()
        outcomes.append(session.submit(trigger=trigger))

    threads = [threading.Thread(target=fire, args=(t,)) for t in ('manual', 'timer', 'manual', 'timer')]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sum(1 for o in outcomes if o.accepted) == 1
    assert sum(1 for o in outcomes if o.ignored) == 3
    assert session.score == 3


def test_advance_only_from_feedback(config_doc):
    session = ready_session(config_doc)
    assert session.advance() is False
    play_perfect_round_one(session)
    assert session.advance() is True
    assert session.state == RoundState.READY
    assert session.round_number == 2
    assert session.allocations == {'bat': {}}
    assert session.feedback is None
    assert [c.name for c in session.remaining()] == ['Candy Corn']


def test_game_over_saves_final_score(config_doc):
    store = RecordingStore()
    session = ready_session(config_doc, store)
    play_perfect_round_one(session)
    session.advance()
    session.set_allocation('bat', {'Candy Corn': 2})
    session.submit()
    assert session.advance() is True
    assert session.state == RoundState.GAME_OVER
    assert store.calls == [('Casper', 11, 2, 2)]
    results = session.final_results()
    assert results == {
        'nickname': 'Casper',
        'finalScore': 11,
        'roundsCompleted': 2,
        'totalRounds': 2,
        'saved': True,
        'saveWarning': None,
    }
    # game over is terminal
    assert session.advance() is False
    assert session.submit().ignored is True
    assert len(store.calls) == 1


def test_save_failure_only_warns(config_doc):
    store = RecordingStore(result=False)
    session = ready_session(config_doc, store)
    for _ in range(2):
        session.submit()
        session.advance()
    assert session.state == RoundState.GAME_OVER
    assert session.final_results()['saved'] is False
    assert session.final_results()['saveWarning'] == SAVE_FAILED_WARNING


def test_without_store_nothing_is_saved(config_doc):
    session = ready_session(config_doc)
    for _ in range(2):
        session.submit()
        session.advance()
    assert session.final_results()['saved'] is None
    assert session.final_results()['finalScore'] == 0


def test_state_payload(config_doc):
    session = ready_session(config_doc)
    session.set_allocation('ghost', {'Lollipop': 1})
    payload = session.to_dict()
    assert payload['game_code'] == 'ABCD'
    assert payload['state'] == 'ready'
    assert payload['current_round'] == 1
    assert payload['allocations']['ghost'] == [{'candyName': 'Lollipop', 'quantity': 1}]
    assert payload['remaining_candies'][0]['quantity'] == 4
    assert payload['timer'] == {'total': 3, 'remaining': 3, 'expired': False}
    assert payload['results'] is None


def test_round_timer_expires_once():
    timer = RoundTimer(2)
    assert timer.tick() is False
    assert timer.tick() is True
    assert timer.tick() is False
    assert timer.remaining == 0
    assert timer.expired is True
