import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name, default):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///' + os.path.join(BASE_DIR, 'candyrush.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Round data served to every new session
    GAME_CONFIG_PATH = os.environ.get('GAME_CONFIG_PATH') or os.path.join(BASE_DIR, 'data', 'game-config.json')
    # Feedback screen hold time before the next round (seconds)
    FEEDBACK_DURATION_SEC = float(os.environ.get('FEEDBACK_DURATION_SEC', '2'))
    # Round countdown resolution (seconds)
    TIMER_TICK_SEC = float(os.environ.get('TIMER_TICK_SEC', '1'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
    # Score saving + leaderboard; disabled leaves the game playable without them
    LEADERBOARD_ENABLED = _env_flag('LEADERBOARD_ENABLED', 'true')
    LEADERBOARD_LIMIT = int(os.environ.get('LEADERBOARD_LIMIT', '10'))
    # In-memory sessions are evicted after this much inactivity (seconds)
    SESSION_IDLE_TTL_SEC = float(os.environ.get('SESSION_IDLE_TTL_SEC', '1800'))
    # Finished or failed sessions are kept this long for result reads (seconds)
    SESSION_FINISHED_TTL_SEC = float(os.environ.get('SESSION_FINISHED_TTL_SEC', '300'))
