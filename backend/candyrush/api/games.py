from flask import Blueprint, jsonify, request, current_app, session, abort
from functools import partial

from candyrush.services.games.entities import AllocationError, NicknameError
from candyrush.services.games.orchestrator import GameStateError, RoundState
from candyrush.services.games.scheduler import (
    emit_state_update,
    schedule_feedback_advance,
    schedule_round_timer,
)
from candyrush.services.games.sessions import get_registry
from candyrush.services.games.validation import load_game_config, validate_nickname


games = Blueprint('games', __name__)

# Cross-screen handoff values kept in the signed session cookie
HANDOFF_KEYS = ('nickname', 'final_score', 'rounds_completed')


def _score_store():
    return current_app.extensions.get('candyrush.scores')


def _get_session_or_404(game_code):
    s = get_registry(current_app).get(game_code)
    if s is None:
        abort(404)
    return s


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _round_number(data):
    """Optional ``round_number`` from a JSON body; ValueError when it is not a number."""
    value = data.get('round_number')
    if value is None:
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(value)
    return int(value)


@games.errorhandler(404)
def not_found(_exc):
    return jsonify({'error': 'Game not found'}), 404


@games.route('/nickname', methods=['POST'])
def set_nickname():
    data = _json_body()
    try:
        nickname = validate_nickname(data.get('nickname'))
    except NicknameError as exc:
        return jsonify({'error': str(exc)}), 400
    session['nickname'] = nickname
    return jsonify({'nickname': nickname}), 201


@games.route('/create', methods=['POST'])
def create_game():
    data = _json_body()
    raw_nickname = data.get('nickname') or session.get('nickname')
    if raw_nickname is None:
        return jsonify({'error': 'Set a nickname before starting a game'}), 400
    try:
        nickname = validate_nickname(raw_nickname)
    except NicknameError as exc:
        return jsonify({'error': str(exc)}), 400
    session['nickname'] = nickname

    s = get_registry(current_app).create(nickname, score_store=_score_store())
    path = current_app.config['GAME_CONFIG_PATH']
    state = s.load(partial(load_game_config, path))
    if state == RoundState.LOAD_ERROR:
        # Keep the failed session around so clients can render the error screen
        return jsonify({
            'error': 'Failed to load game configuration',
            'detail': s.load_error,
            'game_code': s.code,
            'state': s.state.value,
        }), 500

    current_app.logger.info(f"[create] game={s.code} nickname={nickname} rounds={s.total_rounds}")
    schedule_round_timer(current_app._get_current_object(), s.code)
    return jsonify(s.to_dict()), 201


@games.route('/<string:game_code>/state', methods=['GET'])
def get_game_state(game_code):
    s = _get_session_or_404(game_code)
    payload = s.to_dict()
    payload['durations'] = {
        'feedback': current_app.config.get('FEEDBACK_DURATION_SEC', 2),
        'tick': current_app.config.get('TIMER_TICK_SEC', 1),
    }
    return jsonify(payload)


@games.route('/<string:game_code>/allocations/<string:child_id>', methods=['PUT'])
def update_allocation(game_code, child_id):
    s = _get_session_or_404(game_code)
    data = _json_body()
    raw = data.get('allocatedCandies', data.get('allocation'))
    try:
        remaining = s.set_allocation(child_id, raw)
    except GameStateError as exc:
        return jsonify({'error': str(exc)}), 409
    except AllocationError as exc:
        return jsonify({'error': str(exc)}), 400
    emit_state_update(s.code)
    payload = s.to_dict()
    payload['remaining_candies'] = [c.to_dict() for c in remaining]
    return jsonify(payload)


@games.route('/<string:game_code>/submit', methods=['POST'])
def submit_round(game_code):
    s = _get_session_or_404(game_code)
    data = _json_body()
    try:
        round_number = _round_number(data)
    except (TypeError, ValueError):
        return jsonify({'error': 'round_number must be a whole number'}), 400
    outcome = s.submit(trigger='manual', round_number=round_number)
    if outcome.ignored:
        # Already scored (double submit or the timer got there first)
        return jsonify({'outcome': outcome.to_dict(), 'state': s.to_dict()}), 202
    emit_state_update(s.code)
    if not outcome.accepted:
        return jsonify({'outcome': outcome.to_dict(), 'state': s.to_dict()}), 409
    schedule_feedback_advance(current_app._get_current_object(), s.code, outcome.round_result.round_number)
    return jsonify({'outcome': outcome.to_dict(), 'state': s.to_dict()})


@games.route('/<string:game_code>/advance', methods=['POST'])
def advance_round(game_code):
    s = _get_session_or_404(game_code)
    data = _json_body()
    try:
        round_number = _round_number(data)
    except (TypeError, ValueError):
        return jsonify({'error': 'round_number must be a whole number'}), 400
    if not s.advance(round_number):
        if s.state == RoundState.GAME_OVER:
            return jsonify(s.to_dict())
        return jsonify({'error': 'Nothing to advance: round has not been scored'}), 400
    emit_state_update(s.code)
    if s.state == RoundState.READY:
        schedule_round_timer(current_app._get_current_object(), s.code)
    else:
        _store_handoff(s)
    return jsonify(s.to_dict())


def _store_handoff(s):
    results = s.final_results()
    if not results:
        return
    session['nickname'] = results['nickname']
    session['final_score'] = results['finalScore']
    session['rounds_completed'] = results['roundsCompleted']


@games.route('/<string:game_code>/results', methods=['GET'])
def get_results(game_code):
    s = _get_session_or_404(game_code)
    results = s.final_results()
    if results is None:
        return jsonify({'error': 'Game is not over yet'}), 400
    _store_handoff(s)
    return jsonify(results)


@games.route('/<string:game_code>', methods=['DELETE'])
def discard_game(game_code):
    get_registry(current_app).discard(game_code)
    keep_nickname = bool(_json_body().get('replay'))
    for key in HANDOFF_KEYS:
        if key == 'nickname' and keep_nickname:
            continue
        session.pop(key, None)
    return jsonify({'ok': True})


@games.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    store = _score_store()
    if store is None:
        return jsonify({'enabled': False, 'entries': []})
    try:
        limit = int(request.args.get('limit', current_app.config.get('LEADERBOARD_LIMIT', 10)))
    except ValueError:
        return jsonify({'error': 'limit must be a number'}), 400
    limit = max(1, min(limit, 100))
    return jsonify({'enabled': True, 'entries': store.top_scores(limit)})
