import pytest

from trivia.services.game.errors import NotFoundError, PreconditionError, ValidationError
from trivia.services.game.presence import ADMIN, DISPLAY, PLAYER
from trivia.services.game.transport import admins_group, displays_group, players_group


def test_join_creates_player_and_announces_count(presence, controller, transport):
    player = presence.join('sid-1', 1, '  Amina  ', lang='fr')
    room = controller.room(1)
    assert room.players['sid-1'] is player
    assert player.display_name == 'Amina'
    assert player.lang == 'fr'
    assert 'sid-1' in transport.groups[players_group(1)]

    state = transport.events('room_state', to='sid-1')[0]
    assert state['status'] == 'waiting'
    assert state['player_name'] == 'Amina'
    assert state['score'] == 0
    assert state['reconnected'] is False
    assert state['question'] is None
    for group in (players_group(1), displays_group(1), admins_group(1)):
        assert transport.events('player_count', to=group)[-1]['player_count'] == 1
    assert transport.events('player_count', to=admins_group(1))[-1]['leaderboard'][0]['name'] == 'Amina'


def test_join_caps_name_length_and_requires_a_name(presence):
    player = presence.join('sid-1', 1, 'x' * 40)
    assert player.display_name == 'x' * 20
    with pytest.raises(ValidationError):
        presence.join('sid-2', 1, '   ')
    with pytest.raises(ValidationError):
        presence.join('sid-3', 1, None)


def test_oversized_photo_is_dropped_but_join_proceeds(presence):
    big = presence.join('sid-1', 1, 'Big', photo='p' * 70000)
    small = presence.join('sid-2', 1, 'Small', photo='p' * 100)
    assert big.photo is None
    assert small.photo == 'p' * 100


def test_join_unknown_room_is_not_found(presence):
    with pytest.raises(NotFoundError):
        presence.join('sid-1', 99, 'Ann')
    assert presence.session('sid-1') is None


def test_join_mid_question_receives_sanitized_question(presence, controller, transport):
    controller.start(1)
    controller.advance(1)
    presence.join('sid-late', 1, 'Late')
    state = transport.events('room_state', to='sid-late')[0]
    assert state['status'] == 'question'
    assert state['question']['question_number'] == 1
    assert 'correct' not in state['question']
    assert state['total_questions'] == 2


def test_disconnect_moves_player_to_holding(presence, controller, transport):
    presence.join('sid-1', 1, 'Ann')
    presence.join('sid-2', 1, 'Bob')
    controller.advance(1)
    controller.submit_answer(1, 'sid-1', 0)
    presence.disconnect('sid-1')
    room = controller.room(1)
    assert 'sid-1' not in room.players
    assert 'sid-1' not in room.answers
    assert room.holding['ann'].player.display_name == 'Ann'
    assert presence.session('sid-1') is None
    for group in (players_group(1), displays_group(1), admins_group(1)):
        assert transport.events('player_count', to=group)[-1]['player_count'] == 1


def test_rejoin_within_grace_restores_progress(presence, controller, clock):
    presence.join('sid-1', 1, 'Ann')
    controller.advance(1)
    controller.submit_answer(1, 'sid-1', 0)
    controller.reveal(1)
    presence.disconnect('sid-1')
    clock.advance(299)

    player = presence.join('sid-9', 1, 'ANN')
    room = controller.room(1)
    assert player.score == 20
    assert player.correct_answer_count == 1
    assert player.display_name == 'Ann'
    assert room.players['sid-9'] is player
    assert room.holding == {}


def test_rejoin_reports_reconnected_flag(presence, transport):
    presence.join('sid-1', 1, 'Ann')
    presence.disconnect('sid-1')
    presence.join('sid-2', 1, 'ann')
    assert transport.events('room_state', to='sid-2')[0]['reconnected'] is True


def test_rejoin_after_grace_starts_fresh(presence, controller, clock):
    presence.join('sid-1', 1, 'Ann')
    controller.advance(1)
    controller.submit_answer(1, 'sid-1', 0)
    controller.reveal(1)
    presence.disconnect('sid-1')
    clock.advance(301)

    player = presence.join('sid-2', 1, 'Ann')
    assert player.score == 0
    assert player.correct_answer_count == 0
    assert controller.room(1).holding == {}


def test_sweep_purges_only_expired_entries(presence, controller, clock):
    presence.join('sid-1', 1, 'Old')
    presence.disconnect('sid-1')
    clock.advance(200)
    presence.join('sid-2', 1, 'Recent')
    presence.disconnect('sid-2')
    clock.advance(150)
    assert presence.sweep() == 1
    assert set(controller.room(1).holding) == {'recent'}


def test_admin_switch_leaves_previous_group_first(presence, transport):
    presence.connect_admin('sid-a', 1)
    assert transport.events('admin_update', to='sid-a')[0]['room_id'] == 1
    presence.switch_admin_room('sid-a', 2)
    assert 'sid-a' not in transport.groups[admins_group(1)]
    assert 'sid-a' in transport.groups[admins_group(2)]
    assert presence.admin_sids(1) == set()
    assert presence.admin_sids(2) == {'sid-a'}
    assert transport.events('admin_update', to='sid-a')[-1]['room_id'] == 2


def test_switch_to_unknown_room_keeps_current_membership(presence):
    presence.connect_admin('sid-a', 1)
    with pytest.raises(NotFoundError):
        presence.switch_admin_room('sid-a', 7)
    assert presence.session('sid-a').room_id == 1
    assert presence.admin_sids(1) == {'sid-a'}


def test_only_admins_can_switch(presence):
    presence.join('sid-p', 1, 'Ann')
    with pytest.raises(PreconditionError):
        presence.switch_admin_room('sid-p', 2)
    with pytest.raises(PreconditionError):
        presence.require_admin('sid-nobody')


def test_declaring_a_new_role_releases_the_old_one(presence, controller, transport):
    presence.join('sid-x', 1, 'Ann')
    presence.connect_admin('sid-x', 1)
    assert presence.session('sid-x').role == ADMIN
    assert 'sid-x' not in controller.room(1).players
    assert 'ann' in controller.room(1).holding
    assert 'sid-x' not in transport.groups[players_group(1)]

    presence.connect_display('sid-x', 2)
    assert presence.session('sid-x').role == DISPLAY
    assert presence.admin_sids(1) == set()
    assert presence.display_sids(2) == {'sid-x'}


def test_display_gets_state_snapshot(presence, controller, transport):
    presence.join('sid-p', 1, 'Ann')
    presence.connect_display('sid-d', 1)
    state = transport.events('display_state', to='sid-d')[0]
    assert state['player_count'] == 1
    assert state['status'] == 'waiting'
    assert state['leaderboard'][0]['name'] == 'Ann'


def test_admin_snapshot_counts_admins_and_displays(presence, controller, transport):
    presence.connect_admin('sid-a', 1)
    assert transport.events('admin_update', to='sid-a')[-1]['admin_count'] == 1
    presence.connect_display('sid-d', 1)
    presence.connect_display('sid-e', 1)
    presence.connect_admin('sid-b', 2)

    snapshot = controller.admin_snapshot(controller.room(1))
    assert snapshot['admin_count'] == 1
    assert snapshot['display_count'] == 2
    assert controller.admin_snapshot(controller.room(2))['admin_count'] == 1
    assert controller.admin_snapshot(controller.room(2))['display_count'] == 0

    presence.disconnect('sid-d')
    presence.switch_admin_room('sid-a', 2)
    snapshot = controller.admin_snapshot(controller.room(1))
    assert (snapshot['admin_count'], snapshot['display_count']) == (0, 1)
    assert transport.events('admin_update', to='sid-a')[-1]['admin_count'] == 2


def test_admin_and_display_disconnects_do_not_touch_players(presence, controller):
    presence.join('sid-p', 1, 'Ann')
    presence.connect_admin('sid-a', 1)
    presence.connect_display('sid-d', 1)
    presence.disconnect('sid-a')
    presence.disconnect('sid-d')
    assert presence.admin_sids(1) == set()
    assert presence.display_sids(1) == set()
    assert presence.session('sid-p').role == PLAYER
    assert 'sid-p' in controller.room(1).players
    assert controller.room(1).holding == {}


def test_reset_also_clears_held_progress(presence, controller, clock):
    presence.join('sid-1', 1, 'Ann')
    controller.advance(1)
    controller.submit_answer(1, 'sid-1', 0)
    controller.reveal(1)
    presence.disconnect('sid-1')
    controller.reset(1)
    player = presence.join('sid-2', 1, 'Ann')
    assert player.score == 0
