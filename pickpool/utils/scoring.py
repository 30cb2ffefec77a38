"""
Scoring Engine for the ATS pick pool

This module resolves completed games against the spread and scores single
picks. Both functions are pure and total. For aggregated totals and ranking,
see pickpool/services/leaderboard_aggregator.py
"""

from dataclasses import dataclass
from decimal import Decimal

HOME = "home"
AWAY = "away"
PUSH = "push"
UNDETERMINED = "undetermined"

WIN = "win"
LOSS = "loss"
PENDING = "pending"

DEFAULT_WIN_BASE_POINTS = 20
DEFAULT_PUSH_POINTS = 10

# (minimum cover margin, bonus), highest tier first
MARGIN_BONUS_TIERS = (
    (Decimal(29), 5),
    (Decimal(20), 3),
    (Decimal(11), 1),
)


@dataclass(frozen=True)
class GameResult:
    """Outcome of a game against the spread"""

    covering_side: str
    margin_bonus: int = 0

    @property
    def is_determined(self):
        return self.covering_side != UNDETERMINED


UNDETERMINED_RESULT = GameResult(UNDETERMINED, 0)


@dataclass(frozen=True)
class ScoredPick:
    """Outcome and points for one selection"""

    outcome: str
    points: int

    @property
    def counts(self):
        """Pending picks never contribute to aggregates"""
        return self.outcome != PENDING


@dataclass(frozen=True)
class ScoringRules:
    win_base_points: int = DEFAULT_WIN_BASE_POINTS
    push_points: int = DEFAULT_PUSH_POINTS
    push_epsilon: float = 0

    @classmethod
    def from_config(cls, config):
        return cls(
            win_base_points=config.get("WIN_BASE_POINTS", DEFAULT_WIN_BASE_POINTS),
            push_points=config.get("PUSH_POINTS", DEFAULT_PUSH_POINTS),
            push_epsilon=config.get("PUSH_EPSILON", 0),
        )


def _to_decimal(value):
    if isinstance(value, Decimal):
        return value
    # str() keeps 6.5 as 6.5 instead of its binary float expansion
    return Decimal(str(value))


def margin_bonus_for(margin):
    """
    Bonus points for a cover margin.

    <11 -> 0, 11 up to 20 -> 1, 20 up to 29 -> 3, 29 and above -> 5
    """
    margin = _to_decimal(margin)
    for threshold, bonus in MARGIN_BONUS_TIERS:
        if margin >= threshold:
            return bonus
    return 0


def resolve_game_result(home_score, away_score, spread, epsilon=0):
    """
    Resolve a finished game against the spread.

    The spread is added to the home score before comparing. Callers must only
    pass final scores; use resolve_game() for a Game record of any status.

    Returns:
        GameResult with covering_side 'home', 'away' or 'push'
    """
    adjusted_home = _to_decimal(home_score) + _to_decimal(spread or 0)
    difference = adjusted_home - _to_decimal(away_score)

    if abs(difference) <= _to_decimal(epsilon):
        return GameResult(PUSH, 0)

    covering_side = HOME if difference > 0 else AWAY
    return GameResult(covering_side, margin_bonus_for(abs(difference)))


def resolve_game(game, epsilon=0):
    """
    Resolve a Game record, yielding UNDETERMINED_RESULT unless it is completed
    with both scores present.
    """
    if game is None or not game.is_final:
        return UNDETERMINED_RESULT

    return resolve_game_result(
        game.home_score, game.away_score, game.spread, epsilon=epsilon
    )


def score_pick(
    selected_side,
    is_lock,
    result,
    win_base_points=DEFAULT_WIN_BASE_POINTS,
    push_points=DEFAULT_PUSH_POINTS,
):
    """
    Score a single pick.

    Returns:
        ScoredPick('push', push_points) for a push, lock or not
        ScoredPick('pending', 0) while the game is undetermined
        ScoredPick('win', base + bonus (+ bonus again for a lock)) on a cover
        ScoredPick('loss', 0) otherwise
    """
    if result is None or not result.is_determined:
        return ScoredPick(PENDING, 0)

    if result.covering_side == PUSH:
        return ScoredPick(PUSH, push_points)

    if selected_side == result.covering_side:
        bonus = result.margin_bonus
        if is_lock:
            bonus *= 2
        return ScoredPick(WIN, win_base_points + bonus)

    return ScoredPick(LOSS, 0)


def score_with_rules(selected_side, is_lock, result, rules):
    """score_pick() using the configured ScoringRules"""
    return score_pick(
        selected_side,
        is_lock,
        result,
        win_base_points=rules.win_base_points,
        push_points=rules.push_points,
    )
