from dataclasses import dataclass

from .catalog import QuestionStore
from .controller import LifecycleController, build_rooms
from .presence import PresenceManager
from .room import RoomSettings
from .scheduler import epoch_ms


@dataclass
class GameRuntime:
    settings: RoomSettings
    store: QuestionStore
    controller: LifecycleController
    presence: PresenceManager


def build_runtime(settings: RoomSettings, repository, transport, scheduler, clock=epoch_ms) -> GameRuntime:
    store = QuestionStore(repository)
    controller = LifecycleController(build_rooms(settings), store, transport, scheduler, settings, clock=clock)
    presence = PresenceManager(controller, transport, settings, clock=clock)
    controller.presence_counts = presence.counts
    return GameRuntime(settings=settings, store=store, controller=controller, presence=presence)
