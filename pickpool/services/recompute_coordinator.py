"""
Recompute coordinator

Decides when to re-run aggregation and keeps it idempotent:

- each (participant, season, week) key is recomputed under its own lock and
  committed on its own, so a game fan-out never takes a global lock
- touched scopes are then reranked under a per-scope lock
- storage failures are rolled back and retried with the same inputs
- a failing key is recorded in the batch and never blocks the other keys
"""

import logging
import time

from flask import current_app
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from pickpool import db
from pickpool.errors import PickPoolError, TransientStorageError
from pickpool.models import Game, PickSet
from pickpool.models.leaderboard_entry import (
    BEST_FINISH_SCOPE,
    SEASON_SCOPE,
    WEEK_SCOPE,
    period_key_for,
)
from pickpool.services.events import (
    GameCompleted,
    PickSetChanged,
    PreferenceChanged,
    RecomputeBatch,
)
from pickpool.services.leaderboard_aggregator import LeaderboardAggregator
from pickpool.services.locks import key_locks
from pickpool.utils.cache_utils import invalidate_leaderboard
from pickpool.utils.performance import PerformanceMonitor, timer

logger = logging.getLogger(__name__)


def key_lock_name(participant_id, season, week=None):
    period = "season" if week is None else week
    return f"pickpool:{participant_id}:{season}:{period}"


def scope_lock_name(scope, period_key):
    return f"pickpool:scope:{scope}:{period_key}"


class RecomputeCoordinator:
    """Turns events into locked, retried, idempotent recomputes"""

    def __init__(self, aggregator=None, locks=None):
        self.aggregator = aggregator or LeaderboardAggregator()
        self.locks = locks or key_locks

    # Event fan-out

    def keys_for_event(self, event):
        """(participant_id, season, week) keys an event touches"""
        catalog = self.aggregator.catalog
        if isinstance(event, GameCompleted):
            return catalog.keys_for_game(event.game_id)
        if isinstance(event, PickSetChanged):
            return [(event.participant_id, event.season, event.week)]
        if isinstance(event, PreferenceChanged):
            if event.week is not None:
                return [(event.participant_id, event.season, event.week)]
            return [
                (event.participant_id, event.season, week)
                for week in catalog.weeks_for_participant(
                    event.participant_id, event.season
                )
            ]
        raise TypeError(f"Unknown recompute event: {event!r}")

    @timer
    def dispatch(self, event, batch=None):
        """
        Recompute every key an event touches

        Returns:
            the RecomputeBatch, with failures recorded rather than raised
        """
        batch = batch if batch is not None else RecomputeBatch()
        keys = self.keys_for_event(event)
        logger.info(f"{event.__class__.__name__} touches {len(keys)} keys: {event}")

        self.recompute_keys(keys, batch)
        self.finalize(batch)
        return batch

    def recompute_keys(self, keys, batch):
        for key in keys:
            if not batch.schedule(key):
                logger.debug(f"Key {key} already scheduled in this batch")
                continue
            self.recompute_key(key, batch)
        return batch

    # Per-key work

    def recompute_key(self, key, batch):
        """Rebuild the week and season entries for one key under its locks"""
        participant_id, season, week = key

        def work():
            with self.locks.hold(key_lock_name(participant_id, season, week)):
                with self.locks.hold(key_lock_name(participant_id, season)):
                    self.aggregator.persist_participant(
                        participant_id, WEEK_SCOPE, season, week
                    )
                    self.aggregator.persist_participant(
                        participant_id, SEASON_SCOPE, season
                    )
                    db.session.commit()

        try:
            self._with_retries(f"key {key}", work)
        except (PickPoolError, SQLAlchemyError) as e:
            db.session.rollback()
            logger.error(f"Recompute failed for key {key}: {e}")
            batch.record_failure(key, e)
            return False

        batch.touch_scope(WEEK_SCOPE, period_key_for(WEEK_SCOPE, season, week))
        batch.touch_scope(SEASON_SCOPE, period_key_for(SEASON_SCOPE, season))
        batch.completed.append(key)
        return True

    def _with_retries(self, label, work):
        """
        Run work, retrying storage failures with backoff

        Raises:
            TransientStorageError: once the retries are exhausted
        """
        max_retries = current_app.config.get("RECOMPUTE_MAX_RETRIES", 3)
        delay = current_app.config.get("RECOMPUTE_RETRY_DELAY", 0.5)

        for attempt in range(max_retries + 1):
            try:
                return work()
            except DBAPIError as e:
                db.session.rollback()
                if attempt >= max_retries:
                    raise TransientStorageError(
                        f"Storage failure while recomputing {label}",
                        {"attempts": attempt + 1, "error": str(e.orig)},
                    ) from e
                logger.warning(
                    f"Storage failure while recomputing {label} "
                    f"(attempt {attempt + 1}/{max_retries + 1}): {e.orig}"
                )
                time.sleep(delay * (attempt + 1))

    # Scope work

    def finalize(self, batch):
        """Rerank touched scopes, then invalidate caches and notify clients"""
        for scope, period_key in sorted(batch.scopes):

            def work(scope=scope, period_key=period_key):
                with self.locks.hold(scope_lock_name(scope, period_key)):
                    self.aggregator.rerank_scope(scope, period_key)
                    db.session.commit()

            try:
                self._with_retries(f"{scope} {period_key}", work)
            except (PickPoolError, SQLAlchemyError) as e:
                db.session.rollback()
                logger.error(f"Rerank failed for {scope} {period_key}: {e}")
                batch.record_failure((scope, period_key), e)

            # Totals are already committed and reads rank them, so stale
            # payloads go even when the stored ranks could not be refreshed
            self._publish(scope, period_key)

        if batch.failures:
            logger.warning(f"Recompute batch finished with failures: {batch.summary()}")
        else:
            logger.info(f"Recompute batch finished: {batch.summary()}")
        return batch

    def _publish(self, scope, period_key):
        from pickpool.socketio_handlers import broadcast_leaderboard_update

        scopes = [scope]
        if scope == SEASON_SCOPE:
            # Best Finish is projected from the same season's week rows
            scopes.append(BEST_FINISH_SCOPE)
        for published in scopes:
            invalidate_leaderboard(published, period_key)
            broadcast_leaderboard_update(published, period_key)

    def replace_scope(self, scope, period_key, batch):
        """Full replacement of one scope under its lock"""

        def work():
            with self.locks.hold(scope_lock_name(scope, period_key)):
                with PerformanceMonitor(f"replace {scope} {period_key}"):
                    rows = self.aggregator.replace_scope(scope, period_key)
                db.session.commit()
                return rows

        try:
            self._with_retries(f"{scope} {period_key}", work)
        except (PickPoolError, SQLAlchemyError) as e:
            db.session.rollback()
            logger.error(f"Replace failed for {scope} {period_key}: {e}")
            batch.record_failure((scope, period_key), e)
            return False

        batch.touch_scope(scope, period_key)
        batch.completed.append((scope, period_key))
        return True

    @staticmethod
    def known_periods(season=None):
        """
        Seasons and their weeks that hold games or pick sets

        Returns:
            dict of season -> sorted week list
        """
        periods = {}
        for model in (Game, PickSet):
            query = db.session.query(model.season, model.week).distinct()
            if season is not None:
                query = query.filter(model.season == season)
            for row in query:
                periods.setdefault(row.season, set()).add(row.week)
        return {key: sorted(weeks) for key, weeks in sorted(periods.items())}

    @timer
    def rebuild(self, season=None, week=None, batch=None):
        """
        Full replacement of every scope, or of one season (and optionally a
        single week within it) plus that season's total
        """
        batch = batch if batch is not None else RecomputeBatch()

        for period_season, weeks in self.known_periods(season).items():
            for period_week in weeks:
                if week is not None and period_week != week:
                    continue
                self.replace_scope(
                    WEEK_SCOPE, period_key_for(WEEK_SCOPE, period_season, period_week), batch
                )
            self.replace_scope(SEASON_SCOPE, period_key_for(SEASON_SCOPE, period_season), batch)

        self.finalize(batch)
        return batch

    @timer
    def recompute_participant(self, participant_id, season=None, week=None, batch=None):
        """Recompute every key of one participant, optionally narrowed"""
        batch = batch if batch is not None else RecomputeBatch()
        catalog = self.aggregator.catalog

        if season is None:
            seasons = [
                row.season
                for row in db.session.query(PickSet.season)
                .filter(PickSet.participant_id == participant_id)
                .distinct()
                .order_by(PickSet.season)
            ]
        else:
            seasons = [season]

        keys = []
        for key_season in seasons:
            if week is not None:
                keys.append((participant_id, key_season, week))
                continue
            keys.extend(
                (participant_id, key_season, key_week)
                for key_week in catalog.weeks_for_participant(participant_id, key_season)
            )

        self.recompute_keys(keys, batch)
        self.finalize(batch)
        return batch


recompute_coordinator = RecomputeCoordinator()
