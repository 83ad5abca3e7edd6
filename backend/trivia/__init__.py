from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_socketio import SocketIO
import click
import json
from config import Config
from trivia.logging_config import configure_logging

db = SQLAlchemy()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, scheduler=None, clock=None):
    """Build the Flask app and the in-memory game runtime.

    ``scheduler`` and ``clock`` default to Socket.IO background tasks and
    wall-clock milliseconds; tests pass manual ones to control time.
    """
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    configure_logging(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'
    db.init_app(flask_app)
    CORS(flask_app, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from trivia.services.game.persistence import SqlQuestionRepository
    from trivia.services.game.room import RoomSettings
    from trivia.services.game.runtime import build_runtime
    from trivia.services.game.scheduler import BackgroundScheduler, epoch_ms
    from trivia.services.game.transport import SocketIOTransport

    runtime = build_runtime(
        RoomSettings.from_config(flask_app.config),
        SqlQuestionRepository(),
        SocketIOTransport(socketio),
        scheduler or BackgroundScheduler(socketio),
        clock=clock or epoch_ms,
    )
    flask_app.extensions['trivia'] = runtime

    with flask_app.app_context():
        # Ensure models are imported so tables exist before the catalog loads
        import trivia.models  # noqa: F401
        db.create_all()
        runtime.store.load()

    from trivia.main import main
    flask_app.register_blueprint(main)

    from trivia.api.questions import questions
    flask_app.register_blueprint(questions, url_prefix='/api/questions')

    from trivia.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    if flask_app.config.get('ENABLE_SWEEPER') and not flask_app.config.get('TESTING'):
        from trivia.services.game.presence import run_sweeper
        socketio.start_background_task(
            run_sweeper, runtime.presence, socketio, flask_app.config.get('HOLDING_SWEEP_INTERVAL_SEC', 600)
        )

    @click.command('import-questions')
    @click.argument('path', type=click.Path(exists=True, dir_okay=False))
    @click.option('--replace', is_flag=True, help='Replace the catalog instead of merging into it.')
    def import_questions_command(path, replace):
        """Loads questions from a JSON file into the catalog."""
        with open(path, encoding='utf-8') as fh:
            items = json.load(fh)
        if not isinstance(items, list):
            raise click.ClickException('Expected a JSON array of questions.')
        with flask_app.app_context():
            imported = runtime.store.import_questions(items, replace_all=replace)
            click.echo(f'Imported {imported} questions '
                       f'({runtime.store.active_count()} active, version {runtime.store.version}).')

    flask_app.cli.add_command(import_questions_command)

    return flask_app
