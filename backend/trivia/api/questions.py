from flask import Blueprint, Response, current_app, jsonify, request
import json

from trivia.services.game.errors import PersistenceError

questions = Blueprint('questions', __name__)


def _runtime():
    return current_app.extensions['trivia']


@questions.route('/export', methods=['GET'])
def export_questions():
    """
    Downloads the full catalog, inactive questions included.
    """
    body = json.dumps(_runtime().store.to_dicts(), ensure_ascii=False, indent=2)
    return Response(
        body,
        mimetype='application/json',
        headers={'Content-Disposition': 'attachment; filename=trivia-questions.json'},
    )


@questions.route('/import', methods=['POST'])
def import_questions():
    """
    Merges (default) or replaces the catalog with the posted JSON array.
    Entries that fail validation are skipped.
    """
    items = request.get_json(silent=True)
    if not isinstance(items, list):
        return jsonify({'error': 'Invalid format. Expected array of questions.'}), 400

    mode = request.args.get('mode', 'merge')
    if mode not in ('merge', 'replace'):
        return jsonify({'error': "mode must be 'merge' or 'replace'"}), 400

    runtime = _runtime()
    try:
        imported = runtime.store.import_questions(items, replace_all=(mode == 'replace'))
    except PersistenceError as exc:
        current_app.logger.error(f"[import] failed: {exc}")
        return jsonify({'error': f'Failed to import questions: {exc}'}), 500
    runtime.controller.publish_catalog()
    current_app.logger.info(f"[import] mode={mode} imported={imported} total={len(runtime.store.all())}")

    return jsonify({
        'success': True,
        'imported': imported,
        'total': len(runtime.store.all()),
    })
