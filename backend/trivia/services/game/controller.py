import logging
from functools import partial
from typing import Dict, Iterable, Optional

from .catalog import OPTION_COUNT
from .errors import NoActiveQuestionsError, NotFoundError, PreconditionError, ValidationError
from .room import (
    ANSWER, ANSWER_DURATION_BOUNDS, FINISHED, QUESTION, QUESTION_DURATION_BOUNDS, WAITING,
    AnswerRecord, Room, RoomSettings, clamp,
)
from .scheduler import AUTOPLAY, COUNTDOWN, epoch_ms
from .scoring import average_correct_seconds, build_leaderboard, max_score, points_for_latency
from .transport import admins_group, displays_group, players_group

logger = logging.getLogger(__name__)

COUNTDOWN_STEP_SEC = 1.0


def build_rooms(settings: RoomSettings) -> Dict[int, Room]:
    return {room_id: Room(room_id, settings) for room_id in settings.room_ids}


def coerce_room_id(value) -> int:
    if isinstance(value, bool):
        raise NotFoundError(f'unknown room {value!r}')
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise NotFoundError(f'unknown room {value!r}')
    return value


def _parse_duration(value, bounds) -> Optional[int]:
    if value in (None, '', 0):
        return None
    if isinstance(value, bool):
        raise ValidationError('durations must be numbers')
    try:
        return clamp(value, bounds)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError('durations must be numbers')


class LifecycleController:
    """Drives each room through waiting -> question -> answer -> finished.

    Every entry point takes the room lock, mutates the room and pushes the
    resulting payloads to the room's player, admin and display groups.
    """

    def __init__(self, rooms: Dict[int, Room], store, transport, scheduler,
                 settings: RoomSettings, clock=epoch_ms):
        self._rooms = rooms
        self._store = store
        self._transport = transport
        self._scheduler = scheduler
        self._settings = settings
        self._clock = clock
        # Set by build_runtime; returns (admin_count, display_count) for a room id
        self.presence_counts = None

    # -------------------- Lookup -------------------- #

    def room(self, room_id) -> Room:
        room = self._rooms.get(coerce_room_id(room_id))
        if room is None:
            raise NotFoundError(f'unknown room {room_id!r}')
        return room

    @property
    def rooms(self) -> Iterable[Room]:
        return list(self._rooms.values())

    @property
    def store(self):
        return self._store

    # -------------------- Fan-out helpers -------------------- #

    def _emit_players(self, room: Room, event: str, data) -> None:
        self._transport.emit(event, data, to=players_group(room.room_id))

    def _emit_displays(self, room: Room, event: str, data) -> None:
        self._transport.emit(event, data, to=displays_group(room.room_id))

    def _emit_admins(self, room: Room, event: str, data) -> None:
        self._transport.emit(event, data, to=admins_group(room.room_id))

    def _emit_room(self, room: Room, event: str, data) -> None:
        self._emit_players(room, event, data)
        self._emit_displays(room, event, data)

    def leaderboard(self, room: Room):
        return build_leaderboard(room.players.values(), self._settings.leaderboard_size)

    def total_questions(self, room: Room) -> int:
        if room.questions:
            return len(room.questions)
        return self._store.active_count()

    def admin_snapshot(self, room: Room) -> dict:
        current = room.current_question
        admin_count, display_count = self.presence_counts(room.room_id) if self.presence_counts else (0, 0)
        return {
            'room_id': room.room_id,
            'status': room.status,
            'current_question': room.current_question_index,
            'current_active_question': current.to_dict() if current else None,
            'total_questions': self.total_questions(room),
            'player_count': len(room.players),
            'leaderboard': self.leaderboard(room),
            'questions': self._store.to_dicts(),
            'active_question_count': self._store.active_count(),
            'auto_play': room.auto_play,
            'question_duration': room.question_duration_sec,
            'answer_duration': room.answer_duration_sec,
            'time_remaining': room.time_remaining,
            'answer_stats': room.answer_stats,
            'answer_count': len(room.answers),
            'db_version': self._store.version,
            'admin_count': admin_count,
            'display_count': display_count,
        }

    def display_snapshot(self, room: Room) -> dict:
        return {
            'room_id': room.room_id,
            'status': room.status,
            'current_question': room.current_question_index,
            'question': room.public_question() if room.status == QUESTION else None,
            'time_remaining': room.time_remaining,
            'total_questions': self.total_questions(room),
            'leaderboard': self.leaderboard(room),
            'player_count': len(room.players),
            'answer_stats': room.answer_stats,
        }

    def player_snapshot(self, room: Room, player, reconnected: bool = False) -> dict:
        return {
            'room_id': room.room_id,
            'status': room.status,
            'question': room.public_question() if room.status == QUESTION else None,
            'time_remaining': room.time_remaining,
            'player_name': player.display_name,
            'score': player.score,
            'total_questions': self.total_questions(room),
            'reconnected': reconnected,
        }

    # -------------------- Timers -------------------- #

    def _arm(self, room: Room, delay: float, callback, kind: str) -> None:
        room.cancel_timer()
        room.timer = self._scheduler.call_later(delay, callback, kind, label=f'room={room.room_id}')
        logger.debug('[timer-set] room=%s kind=%s delay=%ss', room.room_id, kind, delay)

    def _timer_still_valid(self, room: Room, handle, round_id: int, status: str, index: int) -> bool:
        valid = (
            room.timer is handle
            and not handle.cancelled
            and room.round_id == round_id
            and room.status == status
            and room.current_question_index == index
        )
        if not valid:
            logger.info('[timer-abort] room=%s kind=%s expected=%s/%s actual=%s/%s',
                        room.room_id, handle.kind, status, index,
                        room.status, room.current_question_index)
        return valid

    def _on_autoplay_start(self, room: Room, round_id: int, handle) -> None:
        with room.lock:
            if not self._timer_still_valid(room, handle, round_id, WAITING, -1) or not room.auto_play:
                return
            room.timer = None
            self._advance_locked(room)

    def _on_countdown_tick(self, room: Room, round_id: int, index: int, handle) -> None:
        with room.lock:
            if not self._timer_still_valid(room, handle, round_id, QUESTION, index):
                return
            elapsed_sec = (self._clock() - room.question_started_at) // 1000
            room.time_remaining = max(0, room.question_duration_sec - elapsed_sec)
            self._emit_room(room, 'timer', {'time_remaining': room.time_remaining})
            if room.time_remaining <= 0:
                room.timer = None
                self._reveal_locked(room)
                return
            self._arm(room, COUNTDOWN_STEP_SEC,
                      partial(self._on_countdown_tick, room, round_id, index), COUNTDOWN)

    def _on_autoplay_next(self, room: Room, round_id: int, index: int, handle) -> None:
        with room.lock:
            if not self._timer_still_valid(room, handle, round_id, ANSWER, index) or not room.auto_play:
                return
            room.timer = None
            if room.is_last_question:
                self._finish_locked(room)
            else:
                self._advance_locked(room)

    # -------------------- Transitions -------------------- #

    def start(self, room_id, question_duration=None, answer_duration=None, auto_play: bool = False) -> Room:
        room = self.room(room_id)
        question_duration = _parse_duration(question_duration, QUESTION_DURATION_BOUNDS)
        answer_duration = _parse_duration(answer_duration, ANSWER_DURATION_BOUNDS)
        with room.lock:
            questions = self._store.active()
            if not questions:
                raise NoActiveQuestionsError()
            room.cancel_timer()
            room.round_id += 1
            room.questions = questions
            room.status = WAITING
            room.current_question_index = -1
            room.question_started_at = None
            room.answers.clear()
            room.answer_stats = {}
            for player in room.players.values():
                player.reset_progress()
            for entry in room.holding.values():
                entry.player.reset_progress()
            if question_duration is not None:
                room.question_duration_sec = question_duration
            if answer_duration is not None:
                room.answer_duration_sec = answer_duration
            room.time_remaining = room.question_duration_sec
            room.auto_play = bool(auto_play)
            logger.info('[start] room=%s questions=%d auto_play=%s durations=%ss/%ss',
                        room.room_id, len(questions), room.auto_play,
                        room.question_duration_sec, room.answer_duration_sec)

            total = len(questions)
            self._emit_players(room, 'game_started', {'total_questions': total, 'auto_play': room.auto_play})
            self._emit_displays(room, 'game_started', {'total_questions': total, 'player_count': len(room.players)})
            self._emit_players(room, 'room_state', {
                'room_id': room.room_id,
                'status': WAITING,
                'total_questions': total,
            })
            self._emit_admins(room, 'admin_update', self.admin_snapshot(room))
            if room.auto_play:
                self._arm(room, self._settings.autoplay_start_delay_sec,
                          partial(self._on_autoplay_start, room, room.round_id), AUTOPLAY)
        return room

    def stop_autoplay(self, room_id) -> Room:
        room = self.room(room_id)
        with room.lock:
            room.auto_play = False
            if room.timer is not None and room.timer.kind == AUTOPLAY:
                room.cancel_timer()
            logger.info('[autoplay-stop] room=%s status=%s', room.room_id, room.status)
            self._emit_admins(room, 'admin_update', self.admin_snapshot(room))
        return room

    def advance(self, room_id) -> Room:
        room = self.room(room_id)
        with room.lock:
            self._advance_locked(room)
        return room

    def _advance_locked(self, room: Room) -> None:
        if room.status == QUESTION:
            raise PreconditionError('Reveal the current question before moving on', reason='question_open')
        if room.status == FINISHED:
            raise PreconditionError('The game is finished; reset or start a new game', reason='game_finished')
        if not room.questions:
            room.questions = self._store.active()
            if not room.questions:
                raise NoActiveQuestionsError()
        if room.is_last_question:
            self._finish_locked(room)
            return

        room.current_question_index += 1
        room.status = QUESTION
        room.answers.clear()
        room.answer_stats = {}
        room.question_started_at = self._clock()
        room.time_remaining = room.question_duration_sec
        question = room.current_question
        logger.info('[question] room=%s number=%d/%d text=%r', room.room_id,
                    room.current_question_index + 1, len(room.questions), question.text.resolve())

        self._emit_room(room, 'new_question', {
            'question': room.public_question(),
            'time_remaining': room.time_remaining,
        })
        self._arm(room, COUNTDOWN_STEP_SEC,
                  partial(self._on_countdown_tick, room, room.round_id, room.current_question_index),
                  COUNTDOWN)
        self._emit_admins(room, 'admin_update', self.admin_snapshot(room))
        self._emit_admins(room, 'answer_count', {'count': 0, 'total': len(room.players)})

    def submit_answer(self, room_id, sid: str, choice_index) -> bool:
        """Record a player's answer. Stale, duplicate or malformed submissions are ignored."""
        room = self.room(room_id)
        with room.lock:
            if room.status != QUESTION or sid not in room.players or sid in room.answers:
                logger.debug('[answer-ignored] room=%s sid=%s status=%s', room.room_id, sid, room.status)
                return False
            if isinstance(choice_index, bool) or not isinstance(choice_index, int) \
                    or not 0 <= choice_index < OPTION_COUNT:
                logger.debug('[answer-ignored] room=%s sid=%s choice=%r', room.room_id, sid, choice_index)
                return False
            response_ms = max(0, self._clock() - room.question_started_at)
            room.answers[sid] = AnswerRecord(choice_index=choice_index, response_ms=response_ms)
            logger.info('[answer] room=%s player=%s choice=%d time=%.1fs', room.room_id,
                        room.players[sid].display_name, choice_index, response_ms / 1000.0)

            self._transport.emit('answer_received', {'answer': choice_index, 'response_time': response_ms}, to=sid)
            self._emit_displays(room, 'answer_stats_update', {
                'answer_stats': room.compute_answer_stats(),
                'answered_count': len(room.answers),
                'total_players': len(room.players),
            })
            self._emit_admins(room, 'answer_count', {'count': len(room.answers), 'total': len(room.players)})
            return True

    def reveal(self, room_id) -> Room:
        room = self.room(room_id)
        with room.lock:
            if room.status != QUESTION:
                raise PreconditionError('There is no open question to reveal', reason='no_open_question')
            self._reveal_locked(room)
        return room

    def _reveal_locked(self, room: Room) -> None:
        room.cancel_timer()
        question = room.current_question
        room.status = ANSWER
        room.answer_stats = room.compute_answer_stats()
        full_duration_ms = room.question_duration_sec * 1000
        logger.info('[reveal] room=%s number=%d answers=%d/%d', room.room_id,
                    room.current_question_index + 1, len(room.answers), len(room.players))

        results = []
        for sid, player in room.players.items():
            record = room.answers.get(sid)
            choice = record.choice_index if record else None
            response_ms = record.response_ms if record else full_duration_ms
            is_correct = choice is not None and choice == question.correct_index
            points = 0
            if is_correct:
                points = points_for_latency(response_ms)
                player.score += points
                player.total_correct_response_ms += response_ms
                player.correct_answer_count += 1
            player.history.append({
                'question_id': question.id,
                'answer': choice,
                'correct': is_correct,
                'response_time': response_ms,
            })
            results.append((sid, {
                'is_correct': is_correct,
                'points': points,
                'response_time': response_ms,
                'new_score': player.score,
                'explanation': question.explanation.to_json(),
            }))

        self._emit_room(room, 'answer_reveal', {
            'question': question.to_dict(),
            'correct_answer': question.correct_index,
            'explanation': question.explanation.to_json(),
            'leaderboard': self.leaderboard(room),
            'answer_stats': room.answer_stats,
        })
        for sid, result in results:
            self._transport.emit('your_result', result, to=sid)
        self._emit_admins(room, 'admin_update', self.admin_snapshot(room))

        if room.auto_play:
            logger.info('[autoplay] room=%s next action in %ss', room.room_id, room.answer_duration_sec)
            self._arm(room, room.answer_duration_sec,
                      partial(self._on_autoplay_next, room, room.round_id, room.current_question_index),
                      AUTOPLAY)

    def finish(self, room_id) -> Room:
        room = self.room(room_id)
        with room.lock:
            self._finish_locked(room)
        return room

    def _finish_locked(self, room: Room) -> None:
        if room.status == FINISHED:
            logger.debug('[finish-skip] room=%s already finished', room.room_id)
            return
        room.status = FINISHED
        room.auto_play = False
        room.cancel_timer()
        total = len(room.questions)
        logger.info('[finish] room=%s questions=%d players=%d', room.room_id, total, len(room.players))

        self._emit_room(room, 'game_finished', {
            'leaderboard': self.leaderboard(room),
            'total_questions': total,
        })
        for sid, player in room.players.items():
            self._transport.emit('your_final_score', {
                'score': player.score,
                'total_questions': total,
                'max_score': max_score(total),
                'avg_time': average_correct_seconds(player),
                'correct_answers': player.correct_answer_count,
            }, to=sid)
        self._emit_admins(room, 'admin_update', self.admin_snapshot(room))

    def reset(self, room_id) -> Room:
        room = self.room(room_id)
        with room.lock:
            room.cancel_timer()
            room.round_id += 1
            room.status = WAITING
            room.current_question_index = -1
            room.questions = ()
            room.question_started_at = None
            room.time_remaining = room.question_duration_sec
            room.answers.clear()
            room.answer_stats = {}
            room.auto_play = False
            for player in room.players.values():
                player.reset_progress()
            for entry in room.holding.values():
                entry.player.reset_progress()
            logger.info('[reset] room=%s players=%d', room.room_id, len(room.players))

            self._emit_room(room, 'game_reset', {'room_id': room.room_id})
            self._emit_admins(room, 'admin_update', self.admin_snapshot(room))
        return room

    def publish_catalog(self) -> None:
        """Tell the admins of every room that the catalog changed."""
        payload = {'questions': self._store.to_dicts(), 'db_version': self._store.version}
        for room in self.rooms:
            with room.lock:
                self._emit_admins(room, 'questions_updated', payload)
                self._emit_admins(room, 'admin_update', self.admin_snapshot(room))
