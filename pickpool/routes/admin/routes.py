from functools import wraps

from flask import g, jsonify, request

from pickpool.errors import ValidationError
from pickpool.models import AdminAction
from pickpool.routes import batch_summary, int_value, json_body
from pickpool.routes.admin import bp
from pickpool.services import pool_service

ADMIN_HEADER = "X-Admin-Id"


def admin_identity_required(f):
    """
    Require the acting admin's identity. Authentication happens upstream;
    the identity is recorded on every audited change.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        admin_id = request.headers.get(ADMIN_HEADER)
        if not admin_id:
            raise ValidationError(f"{ADMIN_HEADER} header is required")
        g.admin_id = admin_id
        return f(*args, **kwargs)

    return decorated_function


@bp.route("/participants", methods=["POST"])
@admin_identity_required
def create_participant():
    data = json_body()
    participant = pool_service.create_participant(
        data.get("display_name"), email=data.get("email")
    )
    return jsonify({"participant": participant.to_dict()}), 201


@bp.route("/preferences", methods=["PUT"])
@admin_identity_required
def set_preference():
    """Pin the authoritative source for a week, or the season when week is omitted"""
    data = json_body()
    preference, batch = pool_service.set_pick_set_preference(
        participant_id=int_value(data, "participant_id", required=True),
        season=int_value(data, "season", required=True),
        week=int_value(data, "week"),
        discriminator=data.get("discriminator"),
        admin_id=g.admin_id,
        reasoning=data.get("reasoning"),
    )
    return jsonify({"preference": preference.to_dict(), "recompute": batch_summary(batch)})


@bp.route("/preferences", methods=["DELETE"])
@admin_identity_required
def clear_preference():
    data = json_body() or request.args
    batch = pool_service.clear_pick_set_preference(
        participant_id=int_value(data, "participant_id", required=True),
        season=int_value(data, "season", required=True),
        week=int_value(data, "week"),
        admin_id=g.admin_id,
    )
    return jsonify({"recompute": batch_summary(batch)})


@bp.route("/combinations", methods=["PUT"])
@admin_identity_required
def set_combination():
    """Build a custom combination from per-game source choices"""
    data = json_body()
    choices = []
    for choice in data.get("choices") or []:
        choices.append(
            {
                "game_id": int_value(choice, "game_id", required=True),
                "source_pick_set_id": int_value(choice, "source_pick_set_id"),
                "source_discriminator": choice.get("source_discriminator"),
            }
        )

    combination, batch = pool_service.set_custom_combination(
        participant_id=int_value(data, "participant_id", required=True),
        season=int_value(data, "season", required=True),
        week=int_value(data, "week", required=True),
        choices=choices,
        lock_game_id=int_value(data, "lock_game_id", required=True),
        admin_id=g.admin_id,
        reasoning=data.get("reasoning"),
    )
    return jsonify({"combination": combination.to_dict(), "recompute": batch_summary(batch)})


@bp.route("/combinations", methods=["DELETE"])
@admin_identity_required
def clear_combination():
    data = json_body() or request.args
    batch = pool_service.clear_custom_combination(
        participant_id=int_value(data, "participant_id", required=True),
        season=int_value(data, "season", required=True),
        week=int_value(data, "week", required=True),
        admin_id=g.admin_id,
    )
    return jsonify({"recompute": batch_summary(batch)})


@bp.route("/pick-sets/<int:pick_set_id>/assign", methods=["POST"])
@admin_identity_required
def assign_pick_set(pick_set_id):
    data = json_body()
    pick_set, batch = pool_service.assign_anonymous_pick_set(
        pick_set_id,
        participant_id=int_value(data, "participant_id", required=True),
        admin_id=g.admin_id,
    )
    return jsonify({"pick_set": pick_set.to_dict(), "recompute": batch_summary(batch)})


@bp.route("/recompute", methods=["POST"])
@admin_identity_required
def recompute():
    """Force a full recompute of a scope, or of everything"""
    data = json_body()
    batch = pool_service.recompute_now(
        participant_id=int_value(data, "participant_id"),
        season=int_value(data, "season"),
        week=int_value(data, "week"),
        admin_id=g.admin_id,
    )
    return jsonify({"success": batch.succeeded, "summary": batch.summary()})


@bp.route("/conflicts")
def conflicts():
    season = int_value(request.args, "season", required=True)
    week = int_value(request.args, "week")
    report = pool_service.detect_pick_set_conflicts(season, week)
    return jsonify(
        {
            "season": season,
            "week": week,
            "active": sum(1 for item in report if item["status"] == "ACTIVE"),
            "conflicts": report,
        }
    )


@bp.route("/participants/<int:participant_id>/pick-sets")
def compare_pick_sets(participant_id):
    return jsonify(
        pool_service.compare_pick_sets(
            participant_id,
            int_value(request.args, "season", required=True),
            int_value(request.args, "week", required=True),
        )
    )


@bp.route("/actions")
def admin_actions():
    """Recent audited admin actions, newest first"""
    limit = min(int_value(request.args, "limit") or 50, 500)
    query = AdminAction.query
    participant_id = int_value(request.args, "participant_id")
    if participant_id is not None:
        query = query.filter_by(participant_id=participant_id)
    actions = query.order_by(AdminAction.created_at.desc(), AdminAction.id.desc()).limit(limit)
    return jsonify({"actions": [action.to_dict() for action in actions]})


@bp.route("/status")
def pool_status():
    """Reconciliation job, cache backend and realtime connections"""
    from pickpool.services.scheduler_service import scheduler_service
    from pickpool.socketio_handlers import get_connection_stats
    from pickpool.utils.cache_utils import CacheManager

    return jsonify(
        {
            "scheduler": scheduler_service.get_status(),
            "cache": CacheManager.get_cache_stats(),
            "realtime": get_connection_stats(),
        }
    )
