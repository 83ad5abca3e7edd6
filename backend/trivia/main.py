from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


def _runtime():
    return current_app.extensions['trivia']


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the trivia game server!'})


@main.route('/health')
def health():
    runtime = _runtime()
    rooms = runtime.controller.rooms
    return jsonify({
        'status': 'ok',
        'total_players': sum(len(room.players) for room in rooms),
        'rooms': len(rooms),
        'db_version': runtime.store.version,
        'questions_total': len(runtime.store.all()),
        'questions_active': runtime.store.active_count(),
    })


@main.route('/api/db-status')
def db_status():
    store = _runtime().store
    return jsonify({
        'version': store.version,
        'total_questions': len(store.all()),
        'active_questions': store.active_count(),
        'last_updated': store.last_updated,
    })
