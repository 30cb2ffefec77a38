from flask import current_app, jsonify, request

from pickpool import limiter
from pickpool.routes import batch_summary, datetime_value, int_value, json_body
from pickpool.routes.api import bp
from pickpool.services import pool_service


@bp.route("/games/<int:game_id>", methods=["PUT"])
def upsert_game(game_id):
    """Game ingestion feed: insert or update one game"""
    data = json_body()
    known = {
        "game_id",
        "season",
        "week",
        "home_team",
        "away_team",
        "spread",
        "home_score",
        "away_score",
        "status",
    }
    # Precomputed results from the feed are passed along only to be ignored
    extra = {key: value for key, value in data.items() if key not in known}
    game, batch = pool_service.upsert_game(
        game_id,
        season=int_value(data, "season", required=True),
        week=int_value(data, "week", required=True),
        home_team=data.get("home_team"),
        away_team=data.get("away_team"),
        spread=data.get("spread", 0),
        home_score=int_value(data, "home_score"),
        away_score=int_value(data, "away_score"),
        status=data.get("status", "scheduled"),
        **extra,
    )
    return jsonify(
        {
            "game": game.to_dict(epsilon=current_app.config.get("PUSH_EPSILON", 0)),
            "recompute": batch_summary(batch),
        }
    )


@bp.route("/pick-sets", methods=["POST"])
@limiter.limit("60 per minute")
def create_pick_set():
    """Pick submission service: store a complete pick set for one week"""
    data = json_body()
    pick_set, batch = pool_service.create_pick_set(
        participant_id=int_value(data, "participant_id"),
        season=int_value(data, "season", required=True),
        week=int_value(data, "week", required=True),
        source_kind=data.get("source_kind"),
        selections=data.get("selections") or [],
        lock_game_id=int_value(data, "lock_game_id"),
        source_discriminator=data.get("source_discriminator"),
        submitted_at=datetime_value(data, "submitted_at"),
        submitter_email=data.get("submitter_email"),
    )
    return (
        jsonify({"pick_set": pick_set.to_dict(), "recompute": batch_summary(batch)}),
        201,
    )


@bp.route("/leaderboard/<scope>/<period_key>")
def leaderboard(scope, period_key):
    """Ranked leaderboard for a week ('2024-W03') or a season ('2024')"""
    return jsonify(pool_service.get_leaderboard(scope, period_key))


@bp.route("/participants/<int:participant_id>/source")
def authoritative_source(participant_id):
    """Which pick set counts for a participant's week"""
    return jsonify(
        pool_service.get_authoritative_source(
            participant_id,
            int_value(request.args, "season", required=True),
            int_value(request.args, "week", required=True),
        )
    )
