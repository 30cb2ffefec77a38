from pickpool import db
from pickpool.models import PickSet
from pickpool.services import pool_service
from pickpool.services.pick_set_catalog import PickSetCatalog


def test_enumerates_each_candidate_once_in_stable_order(make):
    alice = make.participant("Alice")
    g1 = make.game()
    make.pick_set(
        alice, {g1.id: "away"}, lock=g1.id, kind="anonymous", discriminator="anon-b",
        submitted_at=make.at(20),
    )
    make.pick_set(alice, {g1.id: "home"}, lock=g1.id)
    make.pick_set(
        alice, {g1.id: "home"}, lock=g1.id, kind="anonymous", discriminator="anon-a",
        submitted_at=make.at(10),
    )

    catalog = PickSetCatalog()
    first = catalog.enumerate(alice.id, 2024, 1)
    second = catalog.enumerate(alice.id, 2024, 1)

    assert [e.source_discriminator for e in first] == ["authenticated", "anon-a", "anon-b"]
    assert first == second
    assert all(e.selection_count == 1 and e.lock_count == 1 for e in first)


def test_empty_sets_are_not_candidates(make):
    alice = make.participant("Alice")
    make.game()
    db.session.add(
        PickSet(
            participant_id=alice.id,
            season=2024,
            week=1,
            source_kind="anonymous",
            source_discriminator="empty",
            submitted_at=make.at(0),
        )
    )
    db.session.commit()

    assert PickSetCatalog().enumerate(alice.id, 2024, 1) == []


def test_wrong_lock_count_is_flagged_not_corrected(make):
    alice = make.participant("Alice")
    g1 = make.game()
    g2 = make.game(home="TeamC", away="TeamD")
    make.raw_pick_set(
        alice, {g1.id: "home", g2.id: "home"}, locks={g1.id, g2.id},
        kind="anonymous", discriminator="two-locks",
    )

    (entry,) = PickSetCatalog().enumerate(alice.id, 2024, 1)
    assert not entry.eligible
    assert entry.lock_count == 2
    assert "found 2" in entry.ineligible_reason


def test_custom_combination_takes_sides_from_sources_and_its_own_lock(make):
    alice = make.participant("Alice")
    g1 = make.game()
    g2 = make.game(home="TeamC", away="TeamD")
    auth = make.pick_set(alice, {g1.id: "home", g2.id: "home"}, lock=g1.id)
    anon = make.pick_set(
        alice, {g1.id: "away", g2.id: "away"}, lock=g1.id,
        kind="anonymous", discriminator="anon", submitted_at=make.at(5),
    )

    pool_service.set_custom_combination(
        alice.id,
        2024,
        1,
        [
            {"game_id": g1.id, "source_pick_set_id": auth.id},
            {"game_id": g2.id, "source_discriminator": "anon"},
        ],
        lock_game_id=g2.id,
        admin_id="admin-1",
    )

    custom = [e for e in PickSetCatalog().enumerate(alice.id, 2024, 1) if e.is_custom]
    assert len(custom) == 1
    views = {view.game_id: view for view in custom[0].selections}
    assert views[g1.id].selected_side == "home"
    assert views[g1.id].is_lock is False
    assert views[g2.id].selected_side == "away"
    assert views[g2.id].is_lock is True
    assert views[g2.id].source_pick_set_id == anon.id


def test_keys_for_game_skip_unassigned_sets(make):
    alice = make.participant("Alice")
    bob = make.participant("Bob")
    g1 = make.game()
    make.pick_set(alice, {g1.id: "home"}, lock=g1.id)
    make.pick_set(bob, {g1.id: "away"}, lock=g1.id)
    make.pick_set(
        None, {g1.id: "away"}, lock=g1.id, kind="anonymous", email="who@example.com",
    )

    assert PickSetCatalog.keys_for_game(g1.id) == sorted(
        [(alice.id, 2024, 1), (bob.id, 2024, 1)]
    )
    assert PickSetCatalog.participants_for_period(2024, 1) == sorted([alice.id, bob.id])
