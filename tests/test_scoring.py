from decimal import Decimal

import pytest

from pickpool.models import Game
from pickpool.utils.scoring import (
    AWAY,
    HOME,
    LOSS,
    PENDING,
    PUSH,
    UNDETERMINED,
    WIN,
    GameResult,
    ScoringRules,
    margin_bonus_for,
    resolve_game,
    resolve_game_result,
    score_pick,
    score_with_rules,
)


def test_resolution_is_deterministic():
    first = resolve_game_result(31, 10, -3.5)
    second = resolve_game_result(31, 10, -3.5)
    assert first == second
    # 31 - 3.5 = 27.5 vs 10, margin 17.5
    assert first == GameResult(HOME, 1)


@pytest.mark.parametrize(
    "home_score,away_score,spread",
    [(24, 17, -7), (10, 13, 3), (0, 0, 0), (17, 24, 7), (3, 45, 42)],
)
def test_exact_tie_after_spread_is_a_push(home_score, away_score, spread):
    result = resolve_game_result(home_score, away_score, spread)
    assert result.covering_side == PUSH
    assert result.margin_bonus == 0


@pytest.mark.parametrize(
    "margin,bonus",
    [
        (0, 0),
        (Decimal("10.999"), 0),
        (11, 1),
        (Decimal("19.999"), 1),
        (20, 3),
        (Decimal("28.999"), 3),
        (29, 5),
        (45, 5),
    ],
)
def test_margin_bonus_boundaries(margin, bonus):
    assert margin_bonus_for(margin) == bonus


def test_margin_bonus_is_monotonic():
    bonuses = [margin_bonus_for(Decimal(m) / 4) for m in range(0, 160)]
    assert bonuses == sorted(bonuses)


def test_spread_is_added_to_the_home_score():
    # TeamA +6.5, final 24-17: adjusted 30.5 vs 17, margin 13.5
    result = resolve_game_result(24, 17, 6.5)
    assert result == GameResult(HOME, 1)


def test_away_cover_uses_absolute_margin():
    result = resolve_game_result(10, 40, -1.5)
    assert result.covering_side == AWAY
    assert result.margin_bonus == 5


def test_epsilon_widens_the_push_band():
    assert resolve_game_result(20, 20, 0.5).covering_side == HOME
    assert resolve_game_result(20, 20, 0.5, epsilon=0.5).covering_side == PUSH


@pytest.mark.parametrize(
    "status,home_score,away_score",
    [
        ("scheduled", None, None),
        ("in_progress", 21, 3),
        ("completed", 21, None),
        ("completed", None, 3),
    ],
)
def test_unfinished_games_are_undetermined(status, home_score, away_score):
    game = Game(
        id=1,
        season=2024,
        week=1,
        home_team="TeamA",
        away_team="TeamB",
        spread=0,
        home_score=home_score,
        away_score=away_score,
        status=status,
    )
    result = resolve_game(game)
    assert result.covering_side == UNDETERMINED
    assert not result.is_determined


def test_completed_game_resolves():
    game = Game(
        id=1,
        season=2024,
        week=1,
        home_team="TeamA",
        away_team="TeamB",
        spread=6.5,
        home_score=24,
        away_score=17,
        status="completed",
    )
    assert resolve_game(game) == GameResult(HOME, 1)


@pytest.mark.parametrize("bonus", [0, 1, 3, 5])
def test_win_points_double_only_the_bonus_for_a_lock(bonus):
    result = GameResult(HOME, bonus)
    assert score_pick(HOME, False, result).points == 20 + bonus
    assert score_pick(HOME, True, result).points == 20 + 2 * bonus
    assert score_pick(HOME, True, result).outcome == WIN


@pytest.mark.parametrize("is_lock", [False, True])
def test_loss_scores_zero(is_lock):
    scored = score_pick(AWAY, is_lock, GameResult(HOME, 5))
    assert scored.outcome == LOSS
    assert scored.points == 0


@pytest.mark.parametrize("is_lock", [False, True])
def test_push_scores_ten_regardless_of_lock(is_lock):
    scored = score_pick(HOME, is_lock, GameResult(PUSH, 0))
    assert scored.outcome == PUSH
    assert scored.points == 10


def test_pending_picks_score_nothing_and_do_not_count():
    scored = score_pick(HOME, True, GameResult(UNDETERMINED, 0))
    assert scored.outcome == PENDING
    assert scored.points == 0
    assert not scored.counts
    assert score_pick(HOME, False, None).outcome == PENDING


def test_team_a_scenario():
    result = resolve_game_result(24, 17, 6.5)
    assert score_pick(HOME, False, result) == score_pick(HOME, False, result)
    assert score_pick(HOME, False, result).points == 21
    assert score_pick(AWAY, False, result).points == 0
    assert score_pick(HOME, True, result).points == 22


def test_configured_rules():
    rules = ScoringRules.from_config({"WIN_BASE_POINTS": 30, "PUSH_POINTS": 5})
    assert score_with_rules(HOME, True, GameResult(HOME, 3), rules).points == 36
    assert score_with_rules(AWAY, True, GameResult(PUSH, 0), rules).points == 5
    assert ScoringRules.from_config({}) == ScoringRules()
