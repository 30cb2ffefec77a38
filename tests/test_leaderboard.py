from pickpool.models.leaderboard_entry import STATUS_NEEDS_ADMIN
from pickpool.services import pool_service
from pickpool.services.leaderboard_aggregator import (
    BestFinishRow,
    LeaderboardRow,
    assign_ranks,
    best_finish_rank_key,
)
from tests.conftest import season_key, standings, week_key


def row(name, points, wins, participant_id=None, status="ok"):
    return LeaderboardRow(
        participant_id=participant_id or hash(name) % 1000,
        display_name=name,
        scope="week",
        period_key="2024-W03",
        season=2024,
        week=3,
        wins=wins,
        total_points=points,
        status=status,
    )


def ranks(rows):
    return [(r.display_name, r.rank) for r in assign_ranks(rows)]


def test_win_count_breaks_equal_points():
    assert ranks([row("Bea", 100, 4), row("Abe", 100, 5)]) == [("Abe", 1), ("Bea", 2)]


def test_full_ties_share_a_rank_and_the_next_rank_skips():
    result = ranks(
        [row("Cy", 90, 7), row("Bea", 100, 5), row("Abe", 100, 5), row("Dee", 80, 9)]
    )
    assert result == [("Abe", 1), ("Bea", 1), ("Cy", 3), ("Dee", 4)]


def test_name_orders_ties_without_changing_rank():
    result = ranks([row("zed", 50, 2), row("Amy", 50, 2)])
    assert result == [("Amy", 1), ("zed", 1)]


def test_rows_needing_admin_are_unranked_and_last():
    result = ranks(
        [row("Abe", 0, 0, status=STATUS_NEEDS_ADMIN), row("Bea", 40, 2), row("Cy", 20, 1)]
    )
    assert result == [("Bea", 1), ("Cy", 2), ("Abe", None)]


def test_assign_ranks_does_not_mutate_input():
    rows = [row("Abe", 10, 1)]
    assign_ranks(rows)
    assert rows[0].rank is None


def test_team_a_scenario_end_to_end(make):
    alice = make.participant("Alice")
    bob = make.participant("Bob")
    cara = make.participant("Cara")
    g1 = make.game(home="TeamA", away="TeamB", spread=6.5)
    g2 = make.game(home="TeamC", away="TeamD")

    make.pick_set(alice, {g1.id: "home", g2.id: "home"}, lock=g2.id)
    make.pick_set(bob, {g1.id: "away", g2.id: "home"}, lock=g2.id)
    make.pick_set(cara, {g1.id: "home", g2.id: "away"}, lock=g1.id)

    make.finish(g1, 24, 17)

    board = standings("week", week_key(1))
    assert board["Alice"]["total_points"] == 21
    assert board["Bob"]["total_points"] == 0
    assert board["Cara"]["total_points"] == 22
    assert (board["Cara"]["rank"], board["Alice"]["rank"], board["Bob"]["rank"]) == (1, 2, 3)

    # g2 is still scheduled: pending, no points
    assert board["Alice"]["pending"] == 1
    assert board["Alice"]["wins"] == 1
    assert board["Bob"]["losses"] == 1
    assert board["Cara"]["lock_wins"] == 1
    assert board["Bob"]["total_picks"] == 2


def test_pushes_and_lock_losses_are_counted(make):
    alice = make.participant("Alice")
    g1 = make.game(spread=-3)
    g2 = make.game(home="TeamC", away="TeamD", spread=0)
    make.pick_set(alice, {g1.id: "home", g2.id: "home"}, lock=g2.id)

    make.finish(g1, 20, 17)
    make.finish(g2, 10, 14)

    entry = standings("week", week_key(1))["Alice"]
    assert (entry["pushes"], entry["losses"], entry["lock_losses"]) == (1, 1, 1)
    assert entry["total_points"] == 10


def test_season_sums_weeks_and_marks_mixed_sources(make):
    alice = make.participant("Alice")
    w1 = make.game(week=1)
    w2 = make.game(week=2, home="TeamC", away="TeamD")

    make.pick_set(alice, {w1.id: "home"}, lock=w1.id, week=1)
    make.pick_set(
        alice, {w2.id: "away"}, lock=w2.id, week=2,
        kind="anonymous", discriminator="anon-w2", submitted_at=make.at(0),
    )

    make.finish(w1, 21, 0)  # margin 21 -> bonus 3, lock doubles
    make.finish(w2, 0, 10)  # margin 10 -> bonus 0

    season = standings("season", season_key())["Alice"]
    assert season["total_points"] == 26 + 20
    assert season["wins"] == 2
    assert season["source_kind"] == "mixed"
    assert season["week"] is None

    assert standings("week", week_key(1))["Alice"]["source_kind"] == "authenticated"
    assert standings("week", week_key(2))["Alice"]["source_kind"] == "anonymous"


def test_conflicts_show_as_needing_admin(make):
    alice = make.participant("Alice")
    bob = make.participant("Bob")
    g1 = make.game()
    make.raw_pick_set(alice, {g1.id: "home"}, {g1.id}, "authenticated", "authenticated")
    make.raw_pick_set(alice, {g1.id: "away"}, {g1.id}, "authenticated", "authenticated-2")
    make.pick_set(bob, {g1.id: "home"}, lock=g1.id)

    make.finish(g1, 30, 0)

    board = standings("week", week_key(1))
    assert board["Alice"]["status"] == "needs_admin_resolution"
    assert board["Alice"]["rank"] is None
    assert "authenticated" in board["Alice"]["status_detail"]
    assert board["Bob"]["rank"] == 1

    season = standings("season", season_key())
    assert season["Alice"]["status"] == "needs_admin_resolution"
    assert "week 1" in season["Alice"]["status_detail"]


def finish_row(name, participant_id, points, wins, losses, lock_wins, lock_losses):
    return BestFinishRow(
        participant_id=participant_id,
        display_name=name,
        scope="best_finish",
        period_key="2024",
        season=2024,
        total_points=points,
        wins=wins,
        losses=losses,
        lock_wins=lock_wins,
        lock_losses=lock_losses,
    )


def test_best_finish_breaks_ties_on_win_then_lock_percentage():
    rows = [
        finish_row("Ann", 1, 40, 2, 1, 1, 1),
        finish_row("Bob", 2, 40, 2, 1, 2, 0),
        finish_row("Cy", 3, 40, 2, 0, 1, 0),
        finish_row("Dee", 4, 60, 3, 1, 1, 1),
        finish_row("Eve", 5, 40, 2, 1, 1, 1),
    ]

    ranked = assign_ranks(rows, rank_key=best_finish_rank_key)

    assert [(r.display_name, r.rank) for r in ranked] == [
        ("Dee", 1),
        ("Cy", 2),
        ("Bob", 3),
        ("Ann", 4),
        ("Eve", 4),
    ]
    assert ranked[3].to_dict()["win_percentage"] == 0.667
    assert ranked[3].to_dict()["lock_win_percentage"] == 0.5


def test_best_finish_sums_only_its_weeks(app, make):
    app.config["BEST_FINISH_START_WEEK"] = 2
    app.config["BEST_FINISH_END_WEEK"] = 3
    alice = make.participant("Alice")
    bob = make.participant("Bob")
    cara = make.participant("Cara")
    games = {week: make.game(week=week) for week in (1, 2, 3)}
    for week, game in games.items():
        make.pick_set(alice, {game.id: "home"}, lock=game.id, week=week)
        make.pick_set(bob, {game.id: "away" if week != 2 else "home"}, lock=game.id, week=week)
    make.pick_set(cara, {games[1].id: "home"}, lock=games[1].id, week=1)

    make.finish(games[1], 30, 0)  # home by 30: 20 + 5 + 5 on the lock
    make.finish(games[2], 14, 10)
    board = standings("best_finish", "2024")
    assert [(name, entry["rank"]) for name, entry in board.items()] == [
        ("Alice", 1),
        ("Bob", 1),
    ]

    make.finish(games[3], 14, 10)

    payload = pool_service.get_leaderboard("best_finish", "2024")
    assert payload["weeks"] == [2, 3]
    board = {entry["display_name"]: entry for entry in payload["entries"]}
    assert "Cara" not in board
    alice_row, bob_row = board["Alice"], board["Bob"]
    assert (alice_row["rank"], alice_row["total_points"]) == (1, 40)
    assert alice_row["weeks_included"] == [2, 3]
    assert alice_row["win_percentage"] == 1.0
    assert (bob_row["rank"], bob_row["total_points"]) == (2, 20)
    assert bob_row["worst_week_score"] == 0
    assert bob_row["record"] == "1-1-0"

    assert standings("season", season_key())["Alice"]["total_points"] == 30 + 20 + 20
