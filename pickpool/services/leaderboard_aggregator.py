"""
Leaderboard aggregation

Projects (games, pick sets, preferences, combinations) onto leaderboard rows.
Every build recomputes from source data; LeaderboardEntry only caches the
result, so a scope can be rebuilt at any time and always converges.
"""

import logging
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from flask import current_app

from pickpool import db
from pickpool.errors import ConflictError
from pickpool.models import Game, LeaderboardEntry, Participant
from pickpool.models.leaderboard_entry import (
    BEST_FINISH_SCOPE,
    MIXED_SOURCE,
    SEASON_SCOPE,
    STATUS_NEEDS_ADMIN,
    STATUS_OK,
    WEEK_SCOPE,
    parse_period_key,
    period_key_for,
)
from pickpool.services.pick_set_catalog import PickSetCatalog
from pickpool.services.pick_set_selector import PickSetSelector
from pickpool.utils.scoring import LOSS, PUSH, WIN, ScoringRules, score_with_rules

logger = logging.getLogger(__name__)

STATUS_DETAIL_LENGTH = 500


@dataclass
class LeaderboardRow:
    """Totals for one participant in one period scope"""

    participant_id: int
    display_name: str
    scope: str
    period_key: str
    season: int
    week: Optional[int] = None
    source_kind: Optional[str] = None
    source_discriminator: Optional[str] = None
    is_admin_override: bool = False
    total_picks: int = 0
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    pending: int = 0
    lock_wins: int = 0
    lock_losses: int = 0
    total_points: int = 0
    rank: Optional[int] = None
    status: str = STATUS_OK
    status_detail: Optional[str] = None

    @property
    def is_ranked(self):
        return self.status == STATUS_OK

    def add_scored(self, scored, is_lock):
        """Fold one ScoredPick into the totals"""
        self.total_picks += 1
        if not scored.counts:
            self.pending += 1
            return

        self.total_points += scored.points
        if scored.outcome == WIN:
            self.wins += 1
            if is_lock:
                self.lock_wins += 1
        elif scored.outcome == LOSS:
            self.losses += 1
            if is_lock:
                self.lock_losses += 1
        elif scored.outcome == PUSH:
            self.pushes += 1

    def merge(self, other):
        """Add another row's totals into this one"""
        for name in (
            "total_picks",
            "wins",
            "losses",
            "pushes",
            "pending",
            "lock_wins",
            "lock_losses",
            "total_points",
        ):
            setattr(self, name, getattr(self, name) + getattr(other, name))

    @classmethod
    def from_entry(cls, entry):
        values = {name: getattr(entry, name) for name in LeaderboardEntry.ROW_FIELDS}
        return cls(
            participant_id=entry.participant_id,
            scope=entry.scope,
            period_key=entry.period_key,
            rank=entry.rank,
            **values,
        )

    def to_dict(self):
        return {
            "rank": self.rank,
            "participant_id": self.participant_id,
            "display_name": self.display_name,
            "scope": self.scope,
            "period_key": self.period_key,
            "season": self.season,
            "week": self.week,
            "source_kind": self.source_kind,
            "source_discriminator": self.source_discriminator,
            "is_admin_override": self.is_admin_override,
            "total_picks": self.total_picks,
            "wins": self.wins,
            "losses": self.losses,
            "pushes": self.pushes,
            "pending": self.pending,
            "lock_wins": self.lock_wins,
            "lock_losses": self.lock_losses,
            "total_points": self.total_points,
            "status": self.status,
            "status_detail": self.status_detail,
        }


@dataclass
class BestFinishRow(LeaderboardRow):
    """Totals over the Best Finish weeks of a season"""

    weeks_included: Tuple[int, ...] = ()
    worst_week_score: Optional[int] = None

    @property
    def win_percentage(self):
        return _percentage(self.wins, self.wins + self.losses)

    @property
    def lock_win_percentage(self):
        return _percentage(self.lock_wins, self.lock_wins + self.lock_losses)

    def to_dict(self):
        data = super().to_dict()
        data.update(
            {
                "weeks_included": list(self.weeks_included),
                "worst_week_score": self.worst_week_score,
                "win_percentage": float(self.win_percentage),
                "lock_win_percentage": float(self.lock_win_percentage),
                "record": f"{self.wins}-{self.losses}-{self.pushes}",
            }
        )
        return data


def _percentage(part, whole):
    """Share rounded to three places; zero when nothing was decided"""
    if not whole:
        return Decimal("0")
    return (Decimal(part) / Decimal(whole)).quantize(Decimal("0.001"), ROUND_HALF_UP)


def standard_rank_key(row):
    return (row.total_points, row.wins)


def best_finish_rank_key(row):
    return (row.total_points, row.win_percentage, row.lock_win_percentage)


def display_sort_key(row, rank_key=standard_rank_key):
    """Display order: rank key desc, then name for a stable listing"""
    name = (row.display_name or "").lower()
    if not row.is_ranked:
        return (1, (), name, row.participant_id)
    return (0, tuple(-value for value in rank_key(row)), name, row.participant_id)


def assign_ranks(rows, rank_key=standard_rank_key):
    """
    Standard competition ranking, by default over (total_points, wins).

    Rows equal on the rank key share a rank and the next rank skips by the
    size of the tie group. Rows awaiting admin resolution are listed last,
    unranked.

    Returns:
        new list of rows in display order
    """
    ordered = sorted(rows, key=lambda row: display_sort_key(row, rank_key))
    ranked = []
    previous_key = None
    previous_rank = None

    for position, row in enumerate(ordered, start=1):
        if not row.is_ranked:
            ranked.append(replace(row, rank=None))
            continue

        key = rank_key(row)
        rank = previous_rank if key == previous_key else position
        ranked.append(replace(row, rank=rank))
        previous_key, previous_rank = key, rank

    return ranked


def _truncate(detail):
    if detail and len(detail) > STATUS_DETAIL_LENGTH:
        return detail[: STATUS_DETAIL_LENGTH - 3] + "..."
    return detail


class LeaderboardAggregator:
    """Builds and persists leaderboard rows for weeks and seasons"""

    def __init__(self, catalog=None, selector=None, rules=None):
        self.catalog = catalog or PickSetCatalog()
        self.selector = selector or PickSetSelector(self.catalog)
        self._rules = rules

    @property
    def rules(self):
        if self._rules is None:
            return ScoringRules.from_config(current_app.config)
        return self._rules

    def _display_name(self, participant_id):
        participant = db.session.get(Participant, participant_id)
        if participant is None:
            return f"participant-{participant_id}"
        return participant.display_name

    def score_selection(self, row, selection):
        """Score an authoritative selection into a fresh row"""
        rules = self.rules
        game_ids = [view.game_id for view in selection.entry.selections]
        games = {
            game.id: game for game in Game.query.filter(Game.id.in_(game_ids)).all()
        }

        for view in selection.entry.selections:
            game = games.get(view.game_id)
            result = game.result(epsilon=rules.push_epsilon) if game else None
            row.add_scored(
                score_with_rules(view.selected_side, view.is_lock, result, rules),
                view.is_lock,
            )
        return row

    def build_week_row(self, participant_id, season, week, display_name=None):
        """
        Row for one participant's week

        Returns:
            LeaderboardRow, or None when the participant has no candidate sets.
            Precedence conflicts come back as a needs-admin row.
        """
        row = LeaderboardRow(
            participant_id=participant_id,
            display_name=display_name or self._display_name(participant_id),
            scope=WEEK_SCOPE,
            period_key=period_key_for(WEEK_SCOPE, season, week),
            season=season,
            week=week,
        )

        entries = self.catalog.enumerate(participant_id, season, week)
        try:
            selection = self.selector.select(participant_id, season, week, entries=entries)
        except ConflictError as e:
            row.status = STATUS_NEEDS_ADMIN
            row.status_detail = _truncate(e.message)
            return row

        if selection is None:
            return None

        row.source_kind = selection.source_kind
        row.source_discriminator = selection.source_discriminator
        row.is_admin_override = selection.is_admin_override
        return self.score_selection(row, selection)

    def _week_rows(self, participant_id, season, display_name, weeks=None):
        rows = []
        for week in self.catalog.weeks_for_participant(participant_id, season):
            if weeks is not None and week not in weeks:
                continue
            week_row = self.build_week_row(participant_id, season, week, display_name)
            if week_row is not None:
                rows.append(week_row)
        return rows

    @staticmethod
    def _combine(row, week_rows):
        """
        Sum week rows into a multi-week row.

        Weeks decided from different source kinds record the source as
        'mixed'. Any week awaiting admin resolution holds the row back from
        ranking.
        """
        conflicted = []
        kinds = set()
        discriminators = set()
        for week_row in week_rows:
            if not week_row.is_ranked:
                conflicted.append(f"week {week_row.week}: {week_row.status_detail}")
                continue
            row.merge(week_row)
            kinds.add(week_row.source_kind)
            discriminators.add(week_row.source_discriminator)
            row.is_admin_override = row.is_admin_override or week_row.is_admin_override

        if len(kinds) == 1:
            row.source_kind = kinds.pop()
            row.source_discriminator = (
                discriminators.pop() if len(discriminators) == 1 else None
            )
        elif kinds:
            row.source_kind = MIXED_SOURCE

        if conflicted:
            row.status = STATUS_NEEDS_ADMIN
            row.status_detail = _truncate("; ".join(conflicted))
        return row

    def build_season_row(self, participant_id, season, display_name=None):
        """Row for one participant's season: the sum of their week rows"""
        display_name = display_name or self._display_name(participant_id)
        week_rows = self._week_rows(participant_id, season, display_name)
        if not week_rows:
            return None

        row = LeaderboardRow(
            participant_id=participant_id,
            display_name=display_name,
            scope=SEASON_SCOPE,
            period_key=period_key_for(SEASON_SCOPE, season),
            season=season,
        )
        return self._combine(row, week_rows)

    def best_finish_weeks(self):
        """The configured closing stretch of weeks, inclusive"""
        config = current_app.config
        return list(
            range(
                config.get("BEST_FINISH_START_WEEK", 11),
                config.get("BEST_FINISH_END_WEEK", 14) + 1,
            )
        )

    def build_best_finish(self, season, weeks=None):
        """
        Best Finish leaderboard: totals over the closing weeks of a season,
        ranked on points, then win percentage, then lock win percentage.
        Only participants with a candidate set in those weeks appear.

        Returns:
            ranked BestFinishRow list in display order
        """
        weeks = list(weeks) if weeks is not None else self.best_finish_weeks()
        rows = []
        for participant_id in self.catalog.participants_for_period(season):
            display_name = self._display_name(participant_id)
            week_rows = self._week_rows(participant_id, season, display_name, weeks)
            if not week_rows:
                continue

            scored = [week_row for week_row in week_rows if week_row.is_ranked]
            row = BestFinishRow(
                participant_id=participant_id,
                display_name=display_name,
                scope=BEST_FINISH_SCOPE,
                period_key=period_key_for(BEST_FINISH_SCOPE, season),
                season=season,
                weeks_included=tuple(week_row.week for week_row in scored),
                worst_week_score=(
                    min(week_row.total_points for week_row in scored) if scored else None
                ),
            )
            rows.append(self._combine(row, week_rows))

        return assign_ranks(rows, rank_key=best_finish_rank_key)

    def build_row(self, participant_id, scope, season, week=None):
        if scope == WEEK_SCOPE:
            return self.build_week_row(participant_id, season, week)
        return self.build_season_row(participant_id, season)

    def build_scope(self, scope, period_key):
        """
        Project a whole scope from source data, ranked and in display order

        Raises:
            ValueError: for an unknown scope or malformed period key
        """
        season, week = parse_period_key(scope, period_key)
        rows = []
        for participant_id in self.catalog.participants_for_period(season, week):
            row = self.build_row(participant_id, scope, season, week)
            if row is not None:
                rows.append(row)
        return assign_ranks(rows)

    def persist_participant(self, participant_id, scope, season, week=None):
        """
        Upsert one participant's cached entry, or drop it when they no longer
        have anything to score. Ranks are settled by rerank_scope().
        """
        row = self.build_row(participant_id, scope, season, week)
        if row is None:
            LeaderboardEntry.delete_entry(
                participant_id, scope, period_key_for(scope, season, week)
            )
            return None

        LeaderboardEntry.upsert_row(row)
        return row

    def rerank_scope(self, scope, period_key):
        """Recompute ranks across the cached entries of a scope"""
        entries = {
            entry.participant_id: entry
            for entry in LeaderboardEntry.get_scope(scope, period_key)
        }
        ranked = assign_ranks([LeaderboardRow.from_entry(e) for e in entries.values()])
        for row in ranked:
            entry = entries[row.participant_id]
            if entry.rank != row.rank:
                entry.rank = row.rank
        return ranked

    def replace_scope(self, scope, period_key):
        """
        Full replacement of a scope's cached entries from source data

        Returns:
            the ranked rows written
        """
        rows = self.build_scope(scope, period_key)
        keep = set()
        for row in rows:
            entry = LeaderboardEntry.upsert_row(row)
            entry.rank = row.rank
            keep.add(row.participant_id)

        for entry in LeaderboardEntry.get_scope(scope, period_key):
            if entry.participant_id not in keep:
                db.session.delete(entry)

        logger.info(f"Replaced {scope} leaderboard {period_key}: {len(rows)} entries")
        return rows
