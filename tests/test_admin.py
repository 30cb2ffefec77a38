import pytest

from pickpool.errors import ConflictError, NotFoundError, ValidationError
from pickpool.models import AdminAction
from pickpool.services import pool_service
from tests.conftest import standings, week_key


@pytest.fixture
def duplicate_week(make):
    """Alice with an authenticated set and a later anonymous one on one final game"""
    alice = make.participant("Alice")
    game = make.game(spread=-3)
    auth = make.pick_set(alice, {game.id: "home"}, lock=game.id)
    anon = make.pick_set(
        alice, {game.id: "away"}, lock=game.id,
        kind="anonymous", discriminator="alice@example.com", submitted_at=make.at(5),
    )
    make.finish(game, 28, 14)  # home covers by 11
    return alice, game, auth, anon


def test_unassigned_submission_is_linked_by_an_admin(make):
    alice = make.participant("Alice")
    game = make.game()
    pick_set = make.pick_set(
        None, {game.id: "home"}, lock=game.id, kind="anonymous", email="a@example.com"
    )
    assert standings("week", week_key(1)) == {}

    pick_set, batch = pool_service.assign_anonymous_pick_set(pick_set.id, alice.id, "admin-1")

    assert batch.completed == [(alice.id, 2024, 1)]
    assert standings("week", week_key(1))["Alice"]["source_kind"] == "anonymous"
    assert AdminAction.query.filter_by(action_type="assign_pick_set").count() == 1


def test_assignment_is_guarded(make):
    alice = make.participant("Alice")
    bob = make.participant("Bob")
    game = make.game()
    anon = make.pick_set(
        None, {game.id: "home"}, lock=game.id, kind="anonymous", email="a@example.com"
    )
    auth = make.pick_set(alice, {game.id: "away"}, lock=game.id)

    with pytest.raises(ValidationError):
        pool_service.assign_anonymous_pick_set(auth.id, bob.id, "admin-1")
    with pytest.raises(NotFoundError):
        pool_service.assign_anonymous_pick_set(9999, bob.id, "admin-1")

    pool_service.assign_anonymous_pick_set(anon.id, alice.id, "admin-1")
    with pytest.raises(ConflictError):
        pool_service.assign_anonymous_pick_set(anon.id, bob.id, "admin-1")


def test_clearing_a_preference_restores_the_default(duplicate_week):
    alice, _, _, _ = duplicate_week
    pool_service.set_pick_set_preference(alice.id, 2024, 1, "anonymous", "admin-1")
    entry = standings("week", week_key(1))["Alice"]
    assert entry["source_kind"] == "anonymous"
    assert entry["is_admin_override"] is True
    assert entry["total_points"] == 0

    pool_service.clear_pick_set_preference(alice.id, 2024, 1, "admin-1")
    entry = standings("week", week_key(1))["Alice"]
    assert entry["source_kind"] == "authenticated"
    assert entry["is_admin_override"] is False
    assert entry["total_points"] == 20 + 1 + 1

    with pytest.raises(NotFoundError):
        pool_service.clear_pick_set_preference(alice.id, 2024, 1, "admin-1")


def test_week_pin_must_name_an_eligible_set(duplicate_week):
    alice, _, _, _ = duplicate_week
    with pytest.raises(ValidationError):
        pool_service.set_pick_set_preference(alice.id, 2024, 1, "nobody", "admin-1")


def test_clearing_a_combination_returns_to_precedence(duplicate_week):
    alice, game, _, anon = duplicate_week
    pool_service.set_custom_combination(
        alice.id, 2024, 1,
        [{"game_id": game.id, "source_discriminator": anon.source_discriminator}],
        lock_game_id=game.id,
        admin_id="admin-1",
    )
    assert standings("week", week_key(1))["Alice"]["source_kind"] == "custom"

    pool_service.clear_custom_combination(alice.id, 2024, 1, "admin-2")

    assert standings("week", week_key(1))["Alice"]["source_kind"] == "authenticated"
    action = AdminAction.query.filter_by(action_type="clear_combination").one()
    assert action.admin_id == "admin-2"
    with pytest.raises(NotFoundError):
        pool_service.clear_custom_combination(alice.id, 2024, 1, "admin-2")


def test_week_pin_outranks_a_combination(duplicate_week):
    alice, game, auth, _ = duplicate_week
    pool_service.set_custom_combination(
        alice.id, 2024, 1,
        [{"game_id": game.id, "source_pick_set_id": auth.id}],
        lock_game_id=game.id,
        admin_id="admin-1",
    )
    pool_service.set_pick_set_preference(alice.id, 2024, 1, "anonymous", "admin-1")

    source = pool_service.get_authoritative_source(alice.id, 2024, 1)
    assert source["source_kind"] == "anonymous"
    assert source["decided_by"] == "week"


def test_compare_scores_every_candidate(duplicate_week):
    alice, _, auth, anon = duplicate_week

    report = pool_service.compare_pick_sets(alice.id, 2024, 1)

    assert report["conflict"] is None
    by_id = {candidate["pick_set_id"]: candidate for candidate in report["candidates"]}
    assert by_id[auth.id]["is_authoritative"] is True
    assert by_id[auth.id]["score"]["total_points"] == 22
    assert by_id[anon.id]["is_authoritative"] is False
    assert by_id[anon.id]["score"]["losses"] == 1
