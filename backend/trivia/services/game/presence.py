"""Connection roles, room membership and player reconnection.

A connection is an admin, a display or a player of exactly one room at a
time. Players who drop are parked in their room's holding area, keyed by
lowercase name, so rejoining within the grace window restores their score.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Set, Tuple

from .errors import CapacityError, PreconditionError, ValidationError
from .room import HoldingEntry, Player, Room, RoomSettings
from .scheduler import epoch_ms
from .transport import admins_group, displays_group, players_group

logger = logging.getLogger(__name__)

PLAYER = 'player'
ADMIN = 'admin'
DISPLAY = 'display'


@dataclass
class Session:
    role: str
    room_id: int


class PresenceManager:
    def __init__(self, controller, transport, settings: RoomSettings, clock=epoch_ms):
        self._controller = controller
        self._transport = transport
        self._settings = settings
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._admins: Dict[int, Set[str]] = {room.room_id: set() for room in controller.rooms}
        self._displays: Dict[int, Set[str]] = {room.room_id: set() for room in controller.rooms}
        self._lock = threading.RLock()

    @property
    def grace_ms(self) -> int:
        return self._settings.reconnect_grace_sec * 1000

    def session(self, sid: str) -> Optional[Session]:
        return self._sessions.get(sid)

    def require_admin(self, sid: str) -> Session:
        session = self._sessions.get(sid)
        if session is None or session.role != ADMIN:
            raise PreconditionError('Connect as admin first', reason='not_admin')
        return session

    def require_player(self, sid: str) -> Session:
        session = self._sessions.get(sid)
        if session is None or session.role != PLAYER:
            raise PreconditionError('Join a game first', reason='not_player')
        return session

    def admin_sids(self, room_id: int) -> Set[str]:
        return set(self._admins.get(room_id, ()))

    def display_sids(self, room_id: int) -> Set[str]:
        return set(self._displays.get(room_id, ()))

    def counts(self, room_id: int) -> Tuple[int, int]:
        """Admin and display connections watching a room."""
        return len(self._admins.get(room_id, ())), len(self._displays.get(room_id, ()))

    # -------------------- Admins & displays -------------------- #

    def connect_admin(self, sid: str, room_id) -> Room:
        room = self._controller.room(room_id)
        with self._lock:
            self._release(sid)
            self._attach_admin(sid, room)
        logger.info('[admin-connect] room=%s sid=%s', room.room_id, sid)
        self._send_admin_snapshot(sid, room)
        return room

    def switch_admin_room(self, sid: str, room_id) -> Room:
        room = self._controller.room(room_id)
        with self._lock:
            session = self.require_admin(sid)
            previous = session.room_id
            # Leave before joining so no event reaches both admin groups
            self._detach_admin(sid, previous)
            self._attach_admin(sid, room)
        logger.info('[admin-switch] sid=%s room %s -> %s', sid, previous, room.room_id)
        self._send_admin_snapshot(sid, room)
        return room

    def connect_display(self, sid: str, room_id) -> Room:
        room = self._controller.room(room_id)
        with self._lock:
            self._release(sid)
            self._sessions[sid] = Session(DISPLAY, room.room_id)
            self._displays[room.room_id].add(sid)
            self._transport.join(sid, displays_group(room.room_id))
        logger.info('[display-connect] room=%s sid=%s', room.room_id, sid)
        with room.lock:
            self._transport.emit('display_state', self._controller.display_snapshot(room), to=sid)
        return room

    def _attach_admin(self, sid: str, room: Room) -> None:
        self._sessions[sid] = Session(ADMIN, room.room_id)
        self._admins[room.room_id].add(sid)
        self._transport.join(sid, admins_group(room.room_id))

    def _detach_admin(self, sid: str, room_id: int, leave_group: bool = True) -> None:
        self._admins.get(room_id, set()).discard(sid)
        if leave_group:
            self._transport.leave(sid, admins_group(room_id))

    def _send_admin_snapshot(self, sid: str, room: Room) -> None:
        with room.lock:
            self._transport.emit('admin_update', self._controller.admin_snapshot(room), to=sid)

    # -------------------- Players -------------------- #

    def _clean_name(self, name) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError('A player name is required')
        return name.strip()[:self._settings.max_name_length]

    def _check_photo(self, photo) -> Optional[str]:
        if not photo:
            return None
        if not isinstance(photo, str):
            raise CapacityError('photo must be an encoded image string')
        if len(photo) >= self._settings.max_photo_chars:
            raise CapacityError(f'photo exceeds {self._settings.max_photo_chars} characters')
        return photo

    def join(self, sid: str, room_id, name, lang: str = 'en', photo=None) -> Player:
        room = self._controller.room(room_id)
        display_name = self._clean_name(name)
        try:
            photo = self._check_photo(photo)
        except CapacityError as exc:
            logger.warning('[join] room=%s player=%s photo dropped: %s', room.room_id, display_name, exc)
            photo = None
        lang = lang if isinstance(lang, str) and lang else 'en'

        with self._lock:
            self._release(sid)
            self._sessions[sid] = Session(PLAYER, room.room_id)
            self._transport.join(sid, players_group(room.room_id))

        with room.lock:
            now = self._clock()
            entry = room.holding.pop(display_name.lower(), None)
            reconnected = entry is not None and now - entry.disconnected_at < self.grace_ms
            if reconnected:
                player = entry.player
                player.lang = lang
                if photo:
                    player.photo = photo
                logger.info('[rejoin] room=%s player=%s score=%d', room.room_id, player.display_name, player.score)
            else:
                player = Player(display_name=display_name, joined_at=now, lang=lang, photo=photo)
                logger.info('[join] room=%s player=%s total=%d', room.room_id, display_name, len(room.players) + 1)
            room.players[sid] = player

            self._transport.emit('room_state', self._controller.player_snapshot(room, player, reconnected), to=sid)
            self._broadcast_player_count(room)
        return player

    def _broadcast_player_count(self, room: Room) -> None:
        count = {'player_count': len(room.players)}
        self._transport.emit('player_count', count, to=players_group(room.room_id))
        self._transport.emit('player_count', count, to=displays_group(room.room_id))
        self._transport.emit('player_count', dict(count, leaderboard=self._controller.leaderboard(room)),
                             to=admins_group(room.room_id))

    # -------------------- Leaving -------------------- #

    def leave(self, sid: str) -> Optional[Session]:
        """Explicit leave: same bookkeeping as a disconnect, but the socket stays open."""
        with self._lock:
            return self._release(sid)

    def disconnect(self, sid: str) -> Optional[Session]:
        with self._lock:
            return self._release(sid, leave_groups=False)

    def _release(self, sid: str, leave_groups: bool = True) -> Optional[Session]:
        session = self._sessions.pop(sid, None)
        if session is None:
            return None
        if session.role == ADMIN:
            self._detach_admin(sid, session.room_id, leave_groups)
            logger.info('[admin-disconnect] room=%s sid=%s', session.room_id, sid)
        elif session.role == DISPLAY:
            self._displays.get(session.room_id, set()).discard(sid)
            if leave_groups:
                self._transport.leave(sid, displays_group(session.room_id))
            logger.info('[display-disconnect] room=%s sid=%s', session.room_id, sid)
        else:
            self._park_player(sid, session.room_id, leave_groups)
        return session

    def _park_player(self, sid: str, room_id: int, leave_group: bool) -> None:
        room = self._controller.room(room_id)
        if leave_group:
            self._transport.leave(sid, players_group(room_id))
        with room.lock:
            player = room.players.pop(sid, None)
            room.answers.pop(sid, None)
            if player is not None:
                room.holding[player.display_name.lower()] = HoldingEntry(player=player, disconnected_at=self._clock())
                logger.info('[player-disconnect] room=%s player=%s score=%d (held for %ss)',
                            room_id, player.display_name, player.score, self._settings.reconnect_grace_sec)
            self._broadcast_player_count(room)

    def sweep(self, now: Optional[int] = None) -> int:
        """Drop holding entries older than the grace window. Returns how many were purged."""
        now = self._clock() if now is None else now
        purged = 0
        for room in self._controller.rooms:
            with room.lock:
                expired = [key for key, entry in room.holding.items()
                           if now - entry.disconnected_at > self.grace_ms]
                for key in expired:
                    del room.holding[key]
                purged += len(expired)
        if purged:
            logger.info('[holding-sweep] purged=%d', purged)
        return purged


def run_sweeper(presence: PresenceManager, socketio, interval_sec: float) -> None:
    """Background task: sweep the holding areas forever."""
    while True:
        socketio.sleep(interval_sec)
        try:
            presence.sweep()
        except Exception:
            logger.exception('[holding-sweep] failed')
