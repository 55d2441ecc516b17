from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Per-app collaborators: play sessions and the optional score store
    from candyrush.services.games.sessions import EXTENSION_KEY, SessionRegistry
    from candyrush.services.games.leaderboard import LeaderboardStore
    flask_app.extensions[EXTENSION_KEY] = SessionRegistry(
        idle_ttl=flask_app.config.get('SESSION_IDLE_TTL_SEC', 1800),
        finished_ttl=flask_app.config.get('SESSION_FINISHED_TTL_SEC', 300),
    )
    flask_app.extensions['candyrush.scores'] = (
        LeaderboardStore(db) if flask_app.config.get('LEADERBOARD_ENABLED', True) else None
    )
    if flask_app.extensions['candyrush.scores'] is None:
        flask_app.logger.warning('Leaderboard disabled: scores will not be saved.')

    # Import and register blueprints here
    from candyrush.main import main
    flask_app.register_blueprint(main)

    from candyrush.api.games import games
    # Mount game routes under /api to match frontend API client
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from candyrush.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database tables."""
        import candyrush.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('check-config')
    @click.argument('path', required=False)
    def check_config_command(path):
        """Validates a game configuration file."""
        from candyrush.services.games.entities import ConfigError
        from candyrush.services.games.validation import load_game_config
        path = path or flask_app.config['GAME_CONFIG_PATH']
        try:
            config = load_game_config(path)
        except ConfigError as exc:
            raise click.ClickException(str(exc))
        click.echo(f'{path}: version {config.settings.version}, {config.settings.total_rounds} rounds')
        for rnd in config.rounds:
            candies = ', '.join(f'{c.name} x{c.quantity}' for c in rnd.initial_candies)
            click.echo(f'  round {rnd.round_number}: {len(rnd.children)} children, {rnd.time_limit}s, {candies}')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(check_config_command)

    return flask_app
