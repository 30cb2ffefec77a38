import random

import pytest

from pickpool import db
from pickpool.errors import ConflictError
from pickpool.services import pool_service
from pickpool.services.pick_set_catalog import CatalogEntry, SelectionView
from pickpool.services.pick_set_selector import (
    CUSTOM_COMBINATION,
    SEASON_PREFERENCE,
    WEEK_PREFERENCE,
    choose,
)
from tests.conftest import BASE_TIME, PoolFactory


def entry(kind, discriminator, minutes=0, eligible=True):
    selections = (
        SelectionView(game_id=1, selected_side="home", is_lock=True),
        SelectionView(game_id=2, selected_side="away", is_lock=False),
    )
    return CatalogEntry(
        source_kind=kind,
        source_discriminator=discriminator,
        pick_set_id=None,
        submitted_at=PoolFactory.at(minutes),
        selections=selections,
        ineligible_reason=None if eligible else "expected exactly one lock, found 2",
    )


AUTH = entry("authenticated", "authenticated", minutes=30)
ANON_T1 = entry("anonymous", "anon-t1", minutes=10)
ANON_T2 = entry("anonymous", "anon-t2", minutes=20)
CUSTOM = entry("custom", "custom", minutes=40)


def test_no_candidates_means_no_selection():
    assert choose([]) is None


def test_authenticated_beats_anonymous():
    selection = choose([ANON_T1, ANON_T2, AUTH])
    assert selection.source_discriminator == "authenticated"
    assert not selection.is_admin_override


def test_oldest_anonymous_wins_without_authenticated():
    selection = choose([ANON_T2, ANON_T1])
    assert selection.source_discriminator == "anon-t1"


def test_decision_ignores_input_order():
    entries = [AUTH, ANON_T1, ANON_T2]
    expected = choose(entries)
    for seed in range(5):
        shuffled = entries[:]
        random.Random(seed).shuffle(shuffled)
        assert choose(shuffled) == expected


def test_week_preference_overrides_defaults():
    selection = choose([AUTH, ANON_T1, ANON_T2], week_preference="anon-t2")
    assert selection.source_discriminator == "anon-t2"
    assert selection.is_admin_override
    assert selection.decided_by == WEEK_PREFERENCE


def test_week_preference_beats_custom_combination():
    selection = choose([AUTH, CUSTOM], week_preference="authenticated")
    assert selection.source_kind == "authenticated"


def test_custom_combination_beats_season_preference():
    selection = choose([AUTH, ANON_T1, CUSTOM], season_preference="anon-t1")
    assert selection.source_kind == "custom"
    assert selection.decided_by == CUSTOM_COMBINATION


def test_season_preference_applies_when_it_matches():
    selection = choose([AUTH, ANON_T1], season_preference="anonymous")
    assert selection.source_discriminator == "anon-t1"
    assert selection.decided_by == SEASON_PREFERENCE


def test_unmatched_season_preference_falls_back_to_default():
    selection = choose([ANON_T1, ANON_T2], season_preference="authenticated")
    assert selection.source_discriminator == "anon-t1"
    assert not selection.is_admin_override


def test_unmatched_week_preference_needs_admin():
    with pytest.raises(ConflictError):
        choose([AUTH], week_preference="anon-missing")


def test_two_authenticated_sets_need_admin():
    other = entry("authenticated", "authenticated-2")
    with pytest.raises(ConflictError):
        choose([AUTH, other, ANON_T1])


def test_ineligible_sets_are_skipped():
    broken_auth = entry("authenticated", "authenticated", eligible=False)
    selection = choose([broken_auth, ANON_T2])
    assert selection.source_discriminator == "anon-t2"


def test_only_ineligible_sets_need_admin():
    with pytest.raises(ConflictError) as excinfo:
        choose([entry("anonymous", "anon", eligible=False)])
    assert "exactly one lock" in excinfo.value.message


def test_ineligible_custom_combination_needs_admin():
    broken = entry("custom", "custom", eligible=False)
    with pytest.raises(ConflictError):
        choose([AUTH, broken])


def test_precedence_against_stored_pick_sets(make):
    alice = make.participant("Alice")
    g1 = make.game(home="TeamA", away="TeamB")
    g2 = make.game(home="TeamC", away="TeamD")

    auth = make.pick_set(alice, {g1.id: "home", g2.id: "home"}, lock=g1.id)
    make.pick_set(
        alice,
        {g1.id: "away", g2.id: "home"},
        lock=g2.id,
        kind="anonymous",
        discriminator="anon-t1",
        submitted_at=BASE_TIME,
    )
    make.pick_set(
        alice,
        {g1.id: "away", g2.id: "away"},
        lock=g2.id,
        kind="anonymous",
        discriminator="anon-t2",
        submitted_at=make.at(60),
    )

    source = pool_service.get_authoritative_source(alice.id, 2024, 1)
    assert source["source_kind"] == "authenticated"
    assert source["is_admin_override"] is False

    db.session.delete(auth)
    db.session.commit()
    source = pool_service.get_authoritative_source(alice.id, 2024, 1)
    assert source["source_discriminator"] == "anon-t1"

    pool_service.set_pick_set_preference(alice.id, 2024, 1, "anon-t2", admin_id="admin-1")
    source = pool_service.get_authoritative_source(alice.id, 2024, 1)
    assert source["source_discriminator"] == "anon-t2"
    assert source["is_admin_override"] is True
