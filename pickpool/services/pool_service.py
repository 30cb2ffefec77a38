"""
Pick pool operations

Entry points used by the API and admin blueprints and by manage.py. Every
operation that changes scoreable state commits first and then dispatches the
matching recompute event; admin operations are recorded in AdminAction.
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from pickpool import db
from pickpool.errors import ConflictError, NotFoundError, ValidationError
from pickpool.models import (
    AdminAction,
    CustomCombination,
    CustomCombinationChoice,
    Game,
    LeaderboardEntry,
    Participant,
    PickSet,
    PickSetPreference,
)
from pickpool.models.game import GAME_STATUSES
from pickpool.models.leaderboard_entry import (
    BEST_FINISH_SCOPE,
    LEADERBOARD_SCOPES,
    parse_period_key,
)
from pickpool.models.pick_set import ANONYMOUS, AUTHENTICATED, PICK_SIDES
from pickpool.services.events import GameCompleted, PickSetChanged, PreferenceChanged
from pickpool.services.leaderboard_aggregator import LeaderboardRow, assign_ranks
from pickpool.services.pick_set_selector import AuthoritativeSelection, match_preference
from pickpool.services.recompute_coordinator import recompute_coordinator
from pickpool.utils.cache_utils import get_cached_leaderboard, set_cached_leaderboard
from pickpool.utils.scoring import UNDETERMINED_RESULT

logger = logging.getLogger(__name__)

AUTHENTICATED_DISCRIMINATOR = "authenticated"

CONFLICT_ACTIVE = "ACTIVE"
CONFLICT_RESOLVED = "RESOLVED"


def _epsilon():
    return current_app.config.get("PUSH_EPSILON", 0)


def _get_participant(participant_id):
    participant = db.session.get(Participant, participant_id)
    if participant is None:
        raise NotFoundError(
            f"Participant {participant_id} not found", {"participant_id": participant_id}
        )
    return participant


def create_participant(display_name, email=None):
    """Register a participant; pick submission and ranking refer to them by id"""
    if not display_name or not display_name.strip():
        raise ValidationError("A display name is required")
    if email and Participant.query.filter_by(email=email).first():
        raise ConflictError(f"A participant with email {email} already exists")

    participant = Participant(email=email)
    participant.set_display_name(display_name)
    db.session.add(participant)
    db.session.commit()
    logger.info(f"Created participant {participant.id} ({participant.display_name})")
    return participant


def _catalog():
    return recompute_coordinator.aggregator.catalog


def _selector():
    return recompute_coordinator.aggregator.selector


# Games


def upsert_game(
    game_id,
    season,
    week,
    home_team,
    away_team,
    spread,
    home_score=None,
    away_score=None,
    status="scheduled",
    **ignored,
):
    """
    Insert or update a game from the ingestion feed.

    Covering side and margin bonus are always derived here; any precomputed
    values the feed sends (covering_side, margin_bonus, ...) are ignored.

    Returns:
        (game, RecomputeBatch or None) - a batch only when the game's
        resolved result changed
    """
    if ignored:
        logger.debug(f"Ignoring feed fields for game {game_id}: {sorted(ignored)}")

    if status not in GAME_STATUSES:
        raise ValidationError(
            f"Invalid game status: {status}", {"allowed": list(GAME_STATUSES)}
        )
    if not home_team or not away_team or home_team == away_team:
        raise ValidationError("A game needs two different teams")
    for label, score in (("home_score", home_score), ("away_score", away_score)):
        if score is not None and (not isinstance(score, int) or score < 0):
            raise ValidationError(f"{label} must be a non-negative integer")
    try:
        spread = float(spread)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid spread: {spread!r}") from e

    epsilon = _epsilon()
    game = db.session.get(Game, game_id)
    if game is None:
        game = Game(id=game_id)
        db.session.add(game)
        before = UNDETERMINED_RESULT
    else:
        before = game.result(epsilon=epsilon)

    game.season = season
    game.week = week
    game.home_team = home_team
    game.away_team = away_team
    game.spread = spread
    game.home_score = home_score
    game.away_score = away_score
    game.status = status
    db.session.commit()

    after = game.result(epsilon=epsilon)
    if after == before:
        return game, None

    logger.info(
        f"Game {game_id} resolved state changed: {before.covering_side} -> "
        f"{after.covering_side} (bonus {after.margin_bonus})"
    )
    return game, recompute_coordinator.dispatch(GameCompleted(game_id))


# Pick submission


def _normalize_selections(games, selections, lock_game_id):
    """
    Validate submitted selections against the week's games

    Returns:
        list of dicts with game_id, selected_side, is_lock in game order
    """
    games_by_id = {game.id: game for game in games}
    normalized = {}

    for item in selections or []:
        game_id = item.get("game_id")
        game = games_by_id.get(game_id)
        if game is None:
            raise ValidationError(
                f"Game {game_id} is not part of this week", {"game_id": game_id}
            )
        if game_id in normalized:
            raise ValidationError(
                f"Game {game_id} is picked more than once", {"game_id": game_id}
            )

        side = item.get("selected_side")
        if side is None and item.get("team"):
            side = game.side_for_team(item["team"])
        if side not in PICK_SIDES:
            raise ValidationError(
                f"Invalid selection for game {game_id}",
                {"game_id": game_id, "selected_side": side, "team": item.get("team")},
            )

        if lock_game_id is not None:
            is_lock = game_id == lock_game_id
        else:
            is_lock = bool(item.get("is_lock"))
        normalized[game_id] = {
            "game_id": game_id,
            "selected_side": side,
            "is_lock": is_lock,
        }

    missing = sorted(set(games_by_id) - set(normalized))
    if missing:
        raise ValidationError(
            f"Selections must cover every game of the week; missing {missing}",
            {"missing_game_ids": missing},
        )
    if lock_game_id is not None and lock_game_id not in normalized:
        raise ValidationError(
            f"Lock game {lock_game_id} is not part of this week",
            {"lock_game_id": lock_game_id},
        )

    lock_count = sum(1 for item in normalized.values() if item["is_lock"])
    if lock_count != 1:
        raise ValidationError(
            f"Exactly one lock is required, found {lock_count}",
            {"lock_count": lock_count},
        )

    return [normalized[game.id] for game in games]


def create_pick_set(
    participant_id,
    season,
    week,
    source_kind,
    selections,
    lock_game_id=None,
    source_discriminator=None,
    submitted_at=None,
    submitter_email=None,
):
    """
    Store a submitted pick set, or edit the existing set with the same
    source identity in place.

    Raises:
        ValidationError: unknown kind or games, incomplete coverage, lock
            count other than one
        ConflictError: a second authenticated set for the same week
        NotFoundError: unknown participant

    Returns:
        (pick_set, RecomputeBatch or None)
    """
    if source_kind not in (AUTHENTICATED, ANONYMOUS):
        raise ValidationError(
            f"Invalid source kind: {source_kind}",
            {"allowed": [AUTHENTICATED, ANONYMOUS]},
        )
    if participant_id is not None:
        _get_participant(participant_id)
    elif source_kind == AUTHENTICATED:
        raise ValidationError("Authenticated pick sets need a participant")
    elif not submitter_email:
        raise ValidationError("Unassigned anonymous pick sets need a submitter email")

    games = Game.get_games_for_period(season, week)
    if not games:
        raise ValidationError(
            f"No games scheduled for {season} week {week}",
            {"season": season, "week": week},
        )
    normalized = _normalize_selections(games, selections, lock_game_id)

    submitted_at = submitted_at or datetime.now(timezone.utc)
    if source_kind == AUTHENTICATED:
        source_discriminator = source_discriminator or AUTHENTICATED_DISCRIMINATOR
        others = [
            pick_set
            for pick_set in PickSet.get_for_period(participant_id, season, week)
            if pick_set.source_kind == AUTHENTICATED
            and pick_set.source_discriminator != source_discriminator
        ]
        if others:
            raise ConflictError(
                "Participant already has an authenticated pick set for this week",
                {"existing": [pick_set.source_discriminator for pick_set in others]},
            )
    elif not source_discriminator:
        source_discriminator = f"{submitter_email or 'anonymous'}:{submitted_at.isoformat()}"

    pick_set = PickSet.find_by_identity(
        participant_id, season, week, source_kind, source_discriminator
    )
    if pick_set is None:
        pick_set = PickSet(
            participant_id=participant_id,
            season=season,
            week=week,
            source_kind=source_kind,
            source_discriminator=source_discriminator,
            submitter_email=submitter_email,
            submitted_at=submitted_at,
        )
        db.session.add(pick_set)
        action = "Created"
    else:
        # Edits keep the original submission time and identity
        action = "Updated"

    pick_set.replace_selections(normalized)
    db.session.commit()
    logger.info(
        f"{action} {source_kind} pick set {pick_set.id} ({source_discriminator}) "
        f"for participant {participant_id} in {season} week {week}"
    )

    if participant_id is None:
        return pick_set, None
    return pick_set, recompute_coordinator.dispatch(
        PickSetChanged(participant_id, season, week)
    )


def assign_anonymous_pick_set(pick_set_id, participant_id, admin_id):
    """Link an unassigned anonymous submission to a participant"""
    pick_set = db.session.get(PickSet, pick_set_id)
    if pick_set is None:
        raise NotFoundError(f"Pick set {pick_set_id} not found")
    if pick_set.source_kind != ANONYMOUS:
        raise ValidationError("Only anonymous pick sets can be assigned")
    _get_participant(participant_id)

    if pick_set.participant_id == participant_id:
        return pick_set, None
    if pick_set.participant_id is not None:
        raise ConflictError(
            f"Pick set {pick_set_id} is already assigned to participant {pick_set.participant_id}"
        )
    if PickSet.find_by_identity(
        participant_id,
        pick_set.season,
        pick_set.week,
        pick_set.source_kind,
        pick_set.source_discriminator,
    ):
        raise ConflictError(
            "Participant already holds a pick set with this discriminator",
            {"source_discriminator": pick_set.source_discriminator},
        )

    pick_set.participant_id = participant_id
    AdminAction.log_pick_set_assignment(admin_id, pick_set)
    db.session.commit()
    logger.info(f"Admin {admin_id} assigned pick set {pick_set_id} to {participant_id}")

    return pick_set, recompute_coordinator.dispatch(
        PickSetChanged(participant_id, pick_set.season, pick_set.week)
    )


# Admin precedence decisions


def set_pick_set_preference(
    participant_id, season, week, discriminator, admin_id, reasoning=None
):
    """
    Pin a source as authoritative for a week, or for the whole season when
    week is None. A week-level pin must name an eligible candidate.

    Returns:
        (preference, RecomputeBatch)
    """
    _get_participant(participant_id)
    if not discriminator:
        raise ValidationError("A preferred discriminator is required")

    if week is not None:
        entries = [
            entry
            for entry in _catalog().enumerate(participant_id, season, week)
            if entry.eligible
        ]
        if match_preference(entries, discriminator) is None:
            raise ValidationError(
                f"'{discriminator}' matches no eligible pick set for week {week}",
                {
                    "candidates": [entry.source_discriminator for entry in entries],
                },
            )

    preference = PickSetPreference.get(participant_id, season, week)
    previous = preference.preferred_discriminator if preference else None
    if preference is None:
        preference = PickSetPreference(
            participant_id=participant_id, season=season, week=week
        )
        db.session.add(preference)

    preference.preferred_discriminator = discriminator
    preference.set_by_admin = str(admin_id)
    preference.reasoning = reasoning
    AdminAction.log_preference_set(admin_id, preference, previous=previous)
    db.session.commit()

    return preference, recompute_coordinator.dispatch(
        PreferenceChanged(participant_id, season, week)
    )


def clear_pick_set_preference(participant_id, season, week, admin_id):
    """Remove a preference so default precedence applies again"""
    preference = PickSetPreference.get(participant_id, season, week)
    if preference is None:
        raise NotFoundError("No pick set preference to clear")

    previous = preference.preferred_discriminator
    db.session.delete(preference)
    AdminAction.log_preference_cleared(admin_id, participant_id, season, week, previous)
    db.session.commit()

    return recompute_coordinator.dispatch(
        PreferenceChanged(participant_id, season, week)
    )


def _resolve_choice_source(participant_id, season, week, choice):
    source_id = choice.get("source_pick_set_id")
    if source_id is not None:
        pick_set = db.session.get(PickSet, source_id)
        if pick_set is None:
            raise ValidationError(f"Pick set {source_id} not found")
    else:
        discriminator = choice.get("source_discriminator")
        matches = PickSet.query.filter_by(
            participant_id=participant_id,
            season=season,
            week=week,
            source_discriminator=discriminator,
        ).all()
        if len(matches) != 1:
            raise ValidationError(
                f"Source '{discriminator}' does not identify one pick set",
                {"matches": len(matches)},
            )
        pick_set = matches[0]

    if (pick_set.participant_id, pick_set.season, pick_set.week) != (
        participant_id,
        season,
        week,
    ):
        raise ValidationError(
            f"Pick set {pick_set.id} does not belong to this participant and week"
        )
    return pick_set


def set_custom_combination(
    participant_id, season, week, choices, lock_game_id, admin_id, reasoning=None
):
    """
    Build the admin's synthetic pick set: one source pick set per game plus
    an independently chosen lock. Rejected before storage unless it covers
    every game of the week exactly once with exactly one lock.

    Returns:
        (combination, RecomputeBatch)
    """
    _get_participant(participant_id)
    games = Game.get_games_for_period(season, week)
    game_ids = {game.id for game in games}
    if not games:
        raise ValidationError(f"No games scheduled for {season} week {week}")

    resolved = {}
    for choice in choices or []:
        game_id = choice.get("game_id")
        if game_id not in game_ids:
            raise ValidationError(f"Game {game_id} is not part of this week")
        if game_id in resolved:
            raise ValidationError(f"Game {game_id} is chosen more than once")
        source = _resolve_choice_source(participant_id, season, week, choice)
        if source.selection_for_game(game_id) is None:
            raise ValidationError(
                f"Pick set {source.id} has no selection for game {game_id}"
            )
        resolved[game_id] = source

    missing = sorted(game_ids - set(resolved))
    if missing:
        raise ValidationError(
            f"Combination must cover every game of the week; missing {missing}",
            {"missing_game_ids": missing},
        )
    if lock_game_id not in resolved:
        raise ValidationError(
            "Exactly one lock is required among the chosen games",
            {"lock_game_id": lock_game_id},
        )

    combination = CustomCombination.get_for_period(participant_id, season, week)
    if combination is None:
        combination = CustomCombination(
            participant_id=participant_id, season=season, week=week
        )
        db.session.add(combination)

    combination.lock_game_id = lock_game_id
    combination.created_by_admin = str(admin_id)
    combination.reasoning = reasoning

    existing = {choice.game_id: choice for choice in combination.choices}
    for position, game in enumerate(games):
        choice = existing.get(game.id)
        if choice is None:
            choice = CustomCombinationChoice(game_id=game.id)
            combination.choices.append(choice)
        choice.source_pick_set_id = resolved[game.id].id
        choice.position = position

    AdminAction.log_combination_set(admin_id, combination)
    db.session.commit()

    return combination, recompute_coordinator.dispatch(
        PreferenceChanged(participant_id, season, week)
    )


def clear_custom_combination(participant_id, season, week, admin_id):
    """Delete a custom combination so the remaining precedence applies"""
    combination = CustomCombination.get_for_period(participant_id, season, week)
    if combination is None:
        raise NotFoundError("No custom combination to clear")

    db.session.delete(combination)
    AdminAction.log_action(
        admin_id=admin_id,
        action_type="clear_combination",
        description=f"Cleared custom combination for participant {participant_id} (Week {week})",
        participant_id=participant_id,
        season=season,
        week=week,
    )
    db.session.commit()

    return recompute_coordinator.dispatch(
        PreferenceChanged(participant_id, season, week)
    )


# Reads


def get_leaderboard(scope, period_key):
    """
    Ranked leaderboard for a scope, read through the cache.

    Ranks are assigned here from the stored totals, so a payload is always
    consistent with the entries it was read from. Best Finish is projected
    from the week rows of its configured weeks.

    Raises:
        ValidationError: unknown scope or malformed period key
    """
    if scope not in LEADERBOARD_SCOPES:
        raise ValidationError(
            f"Unknown scope: {scope}", {"allowed": list(LEADERBOARD_SCOPES)}
        )
    try:
        season, week = parse_period_key(scope, period_key)
    except ValueError as e:
        raise ValidationError(str(e), {"period_key": period_key}) from e

    cached = get_cached_leaderboard(scope, period_key)
    if cached is not None:
        return cached

    payload = {"scope": scope, "period_key": period_key, "season": season, "week": week}
    if scope == BEST_FINISH_SCOPE:
        aggregator = recompute_coordinator.aggregator
        payload["weeks"] = aggregator.best_finish_weeks()
        rows = aggregator.build_best_finish(season, payload["weeks"])
    else:
        rows = assign_ranks(
            LeaderboardRow.from_entry(entry)
            for entry in LeaderboardEntry.get_scope(scope, period_key)
        )

    payload["entries"] = [row.to_dict() for row in rows]
    set_cached_leaderboard(scope, period_key, payload)
    return payload


def get_authoritative_source(participant_id, season, week):
    """
    Which candidate currently counts for a participant's week

    Raises:
        NotFoundError: the participant has no candidate sets for the week
        ConflictError: precedence needs an admin decision
    """
    _get_participant(participant_id)
    selection = _selector().select(participant_id, season, week)
    if selection is None:
        raise NotFoundError(
            f"Participant {participant_id} has no pick sets for {season} week {week}"
        )

    result = selection.to_dict()
    result.update({"participant_id": participant_id, "season": season, "week": week})
    return result


def compare_pick_sets(participant_id, season, week):
    """Score every candidate side by side for admin review"""
    participant = _get_participant(participant_id)
    aggregator = recompute_coordinator.aggregator
    entries = _catalog().enumerate(participant_id, season, week)

    try:
        current = _selector().select(participant_id, season, week, entries=entries)
        conflict = None
    except ConflictError as e:
        current = None
        conflict = e.message

    candidates = []
    for entry in entries:
        candidate = entry.to_dict()
        if entry.eligible:
            row = aggregator.score_selection(
                LeaderboardRow(
                    participant_id=participant_id,
                    display_name=participant.display_name,
                    scope="week",
                    period_key="",
                    season=season,
                    week=week,
                ),
                AuthoritativeSelection(entry, False),
            )
            candidate["score"] = {
                "total_points": row.total_points,
                "wins": row.wins,
                "losses": row.losses,
                "pushes": row.pushes,
                "pending": row.pending,
            }
        else:
            candidate["score"] = None
        candidate["is_authoritative"] = current is not None and current.entry == entry
        candidates.append(candidate)

    return {
        "participant_id": participant_id,
        "display_name": participant.display_name,
        "season": season,
        "week": week,
        "authoritative": current.to_dict() if current else None,
        "conflict": conflict,
        "candidates": candidates,
    }


def detect_pick_set_conflicts(season, week=None):
    """
    Every (participant, week) holding more than one candidate set, or whose
    precedence cannot be decided

    Returns:
        list of dicts with status ACTIVE (needs admin) or RESOLVED
    """
    catalog = _catalog()
    selector = _selector()
    report = []

    for participant_id in catalog.participants_for_period(season, week):
        participant = db.session.get(Participant, participant_id)
        if week is not None:
            weeks = [week]
        else:
            weeks = catalog.weeks_for_participant(participant_id, season)
        for period_week in weeks:
            entries = catalog.enumerate(participant_id, season, period_week)
            try:
                selection = selector.select(
                    participant_id, season, period_week, entries=entries
                )
            except ConflictError as e:
                selection = None
                status, detail = CONFLICT_ACTIVE, e.message
            else:
                if len(entries) < 2:
                    continue
                status, detail = CONFLICT_RESOLVED, None

            report.append(
                {
                    "participant_id": participant_id,
                    "display_name": participant.display_name if participant else None,
                    "season": season,
                    "week": period_week,
                    "status": status,
                    "detail": detail,
                    "authoritative": selection.to_dict() if selection else None,
                    "candidates": [entry.to_dict() for entry in entries],
                }
            )

    report.sort(
        key=lambda item: (
            item["status"] != CONFLICT_ACTIVE,
            item["week"],
            (item["display_name"] or "").lower(),
        )
    )
    return report


# Repair


def recompute_now(participant_id=None, season=None, week=None, admin_id=None):
    """
    Force a from-scratch recompute of the given scope, or of everything

    Returns:
        RecomputeBatch
    """
    if week is not None and season is None:
        raise ValidationError("A week needs a season")

    if participant_id is not None:
        _get_participant(participant_id)
        batch = recompute_coordinator.recompute_participant(
            participant_id, season=season, week=week
        )
    else:
        batch = recompute_coordinator.rebuild(season=season, week=week)

    if admin_id is not None:
        AdminAction.log_recompute(
            admin_id,
            batch.summary(),
            participant_id=participant_id,
            season=season,
            week=week,
        )
        db.session.commit()
    return batch
