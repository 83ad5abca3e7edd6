"""Fan-out adapter between the game services and Socket.IO."""

NAMESPACE = '/ws'


def players_group(room_id) -> str:
    return f'room:{room_id}:players'


def admins_group(room_id) -> str:
    return f'room:{room_id}:admins'


def displays_group(room_id) -> str:
    return f'room:{room_id}:displays'


class SocketIOTransport:
    def __init__(self, socketio, namespace: str = NAMESPACE):
        self._socketio = socketio
        self._namespace = namespace

    def emit(self, event: str, data, to: str) -> None:
        self._socketio.emit(event, data, to=to, namespace=self._namespace)

    def join(self, sid: str, group: str) -> None:
        self._socketio.server.enter_room(sid, group, namespace=self._namespace)

    def leave(self, sid: str, group: str) -> None:
        self._socketio.server.leave_room(sid, group, namespace=self._namespace)
