from flask_socketio import emit
from flask import current_app, request
from functools import wraps
import logging

from trivia import socketio
from trivia.services.game.errors import TriviaError, ValidationError
from trivia.services.game.presence import PLAYER
from trivia.services.game.transport import NAMESPACE

logger = logging.getLogger(__name__)


def _runtime():
    return current_app.extensions['trivia']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _payload(data) -> dict:
    return data if isinstance(data, dict) else {}


def _room_id(data):
    data = _payload(data)
    if data.get('room_id') in (None, ''):
        return _runtime().settings.room_ids[0]
    return data['room_id']


def _admin_room_id() -> int:
    return _runtime().presence.require_admin(_get_sid()).room_id


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ('true', '1'):
        return True
    if isinstance(value, str) and value.strip().lower() in ('false', '0'):
        return False
    raise ValidationError(f'expected true or false, got {value!r}')


def reports_errors(handler):
    """Turn domain errors into an error_notice for the calling connection only."""
    @wraps(handler)
    def wrapper(data=None):
        try:
            return handler(data)
        except TriviaError as exc:
            logger.info('[error-notice] sid=%s handler=%s reason=%s: %s',
                        _get_sid(), handler.__name__, exc.reason, exc)
            emit('error_notice', exc.to_dict())
    return wrapper


def handle_connect(auth=None):
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason=None):
    _runtime().presence.disconnect(_get_sid())


# ---- Role declarations ----

@reports_errors
def handle_admin_connect(data):
    _runtime().presence.connect_admin(_get_sid(), _room_id(data))


@reports_errors
def handle_admin_switch_room(data):
    _runtime().presence.switch_admin_room(_get_sid(), _room_id(data))


@reports_errors
def handle_display_connect(data):
    _runtime().presence.connect_display(_get_sid(), _room_id(data))


@reports_errors
def handle_join_game(data):
    data = _payload(data)
    _runtime().presence.join(
        _get_sid(),
        _room_id(data),
        data.get('name'),
        lang=data.get('lang') or 'en',
        photo=data.get('photo'),
    )


@reports_errors
def handle_leave_game(data):
    session = _runtime().presence.leave(_get_sid())
    emit('left', {'room_id': session.room_id if session else None})


@reports_errors
def handle_submit_answer(data):
    runtime = _runtime()
    session = runtime.presence.session(_get_sid())
    if session is None or session.role != PLAYER:
        return
    runtime.controller.submit_answer(session.room_id, _get_sid(), _payload(data).get('answer'))


# ---- Admin game control ----

def _start(data, auto_play):
    data = _payload(data)
    _runtime().controller.start(
        _admin_room_id(),
        question_duration=data.get('question_duration'),
        answer_duration=data.get('answer_duration'),
        auto_play=auto_play,
    )


@reports_errors
def handle_admin_start(data):
    _start(data, auto_play=False)


@reports_errors
def handle_admin_start_autoplay(data):
    _start(data, auto_play=True)


@reports_errors
def handle_admin_stop_autoplay(data):
    _runtime().controller.stop_autoplay(_admin_room_id())


@reports_errors
def handle_admin_next_question(data):
    _runtime().controller.advance(_admin_room_id())


@reports_errors
def handle_admin_reveal_answer(data):
    _runtime().controller.reveal(_admin_room_id())


@reports_errors
def handle_admin_reset_game(data):
    _runtime().controller.reset(_admin_room_id())


# ---- Admin catalog edits ----

@reports_errors
def handle_admin_add_question(data):
    _admin_room_id()
    runtime = _runtime()
    runtime.store.add(_payload(data).get('question'))
    runtime.controller.publish_catalog()


@reports_errors
def handle_admin_update_question(data):
    _admin_room_id()
    data = _payload(data)
    runtime = _runtime()
    runtime.store.update(data.get('index'), data.get('question'))
    runtime.controller.publish_catalog()


@reports_errors
def handle_admin_delete_question(data):
    _admin_room_id()
    runtime = _runtime()
    runtime.store.delete(_payload(data).get('index'))
    runtime.controller.publish_catalog()


@reports_errors
def handle_admin_toggle_question(data):
    _admin_room_id()
    runtime = _runtime()
    runtime.store.toggle(_payload(data).get('index'))
    runtime.controller.publish_catalog()


@reports_errors
def handle_admin_bulk_toggle(data):
    _admin_room_id()
    data = _payload(data)
    if 'activate_all' in data:
        activate_all = _flag(data['activate_all'])
    else:
        activate_all = data.get('action') == 'activate-all'
    runtime = _runtime()
    runtime.store.bulk_toggle(activate_all)
    runtime.controller.publish_catalog()


def handle_ping(data=None):
    emit('pong', data or {})


_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'admin_connect': handle_admin_connect,
    'admin_switch_room': handle_admin_switch_room,
    'display_connect': handle_display_connect,
    'join_game': handle_join_game,
    'leave_game': handle_leave_game,
    'submit_answer': handle_submit_answer,
    'admin_start': handle_admin_start,
    'admin_start_autoplay': handle_admin_start_autoplay,
    'admin_stop_autoplay': handle_admin_stop_autoplay,
    'admin_next_question': handle_admin_next_question,
    'admin_reveal_answer': handle_admin_reveal_answer,
    'admin_reset_game': handle_admin_reset_game,
    'admin_add_question': handle_admin_add_question,
    'admin_update_question': handle_admin_update_question,
    'admin_delete_question': handle_admin_delete_question,
    'admin_toggle_question': handle_admin_toggle_question,
    'admin_bulk_toggle': handle_admin_bulk_toggle,
    'ping': handle_ping,
}


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    for event, handler in _HANDLERS.items():
        socketio.on_event(event, handler, namespace=NAMESPACE)
