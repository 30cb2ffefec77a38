"""
Shared fixtures: an app on in-memory SQLite, its test client, and a small
factory that goes through the same service functions the API uses.
"""

from datetime import datetime, timedelta, timezone

import pytest

from pickpool import create_app
from pickpool import db as _db
from pickpool.models import PickSelection, PickSet
from pickpool.models.leaderboard_entry import period_key_for
from pickpool.services import pool_service

SEASON = 2024
BASE_TIME = datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Id": "admin-1"}


class PoolFactory:
    """Builds games, participants and pick sets for a test"""

    def __init__(self):
        self._next_game_id = 1

    def participant(self, display_name, email=None):
        return pool_service.create_participant(display_name, email=email)

    def game(
        self,
        home="TeamA",
        away="TeamB",
        spread=0,
        home_score=None,
        away_score=None,
        status="scheduled",
        week=1,
        season=SEASON,
        game_id=None,
    ):
        if game_id is None:
            game_id = self._next_game_id
        self._next_game_id = max(self._next_game_id, game_id) + 1
        game, _ = pool_service.upsert_game(
            game_id, season, week, home, away, spread, home_score, away_score, status
        )
        return game

    def finish(self, game, home_score, away_score, spread=None):
        """Report final scores for an existing game"""
        game, batch = pool_service.upsert_game(
            game.id,
            game.season,
            game.week,
            game.home_team,
            game.away_team,
            game.spread if spread is None else spread,
            home_score,
            away_score,
            "completed",
        )
        return batch

    def pick_set(
        self,
        participant,
        picks,
        lock,
        kind="authenticated",
        discriminator=None,
        submitted_at=None,
        week=1,
        season=SEASON,
        email=None,
    ):
        """picks maps game id -> 'home' / 'away'; lock is a game id"""
        pick_set, _ = pool_service.create_pick_set(
            participant.id if participant is not None else None,
            season,
            week,
            kind,
            [
                {"game_id": game_id, "selected_side": side}
                for game_id, side in picks.items()
            ],
            lock_game_id=lock,
            source_discriminator=discriminator,
            submitted_at=submitted_at,
            submitter_email=email,
        )
        return pick_set

    def raw_pick_set(
        self, participant, picks, locks, kind, discriminator, week=1, season=SEASON
    ):
        """Store a pick set directly, bypassing submission validation"""
        pick_set = PickSet(
            participant_id=participant.id,
            season=season,
            week=week,
            source_kind=kind,
            source_discriminator=discriminator,
            submitted_at=BASE_TIME,
        )
        for position, (game_id, side) in enumerate(picks.items()):
            pick_set.selections.append(
                PickSelection(
                    game_id=game_id,
                    selected_side=side,
                    is_lock=game_id in locks,
                    position=position,
                )
            )
        _db.session.add(pick_set)
        _db.session.commit()
        return pick_set

    @staticmethod
    def at(minutes):
        return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture
def make(app):
    return PoolFactory()


def week_key(week, season=SEASON):
    return period_key_for("week", season, week)


def season_key(season=SEASON):
    return period_key_for("season", season)


def standings(scope, period_key):
    """Leaderboard entries keyed by display name"""
    payload = pool_service.get_leaderboard(scope, period_key)
    return {entry["display_name"]: entry for entry in payload["entries"]}
