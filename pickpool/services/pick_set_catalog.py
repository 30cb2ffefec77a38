"""
Pick set catalog

Enumerates every candidate pick set a participant has for one week: the
authenticated submission, each anonymous submission linked to them, and the
admin-crafted custom combination. Candidates that cannot be scored as stored
are flagged ineligible here and left untouched.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Tuple

from pickpool import db
from pickpool.models import CustomCombination, PickSelection, PickSet
from pickpool.models.pick_set import CUSTOM, SOURCE_KIND_ORDER

logger = logging.getLogger(__name__)

CUSTOM_DISCRIMINATOR = "custom"


def as_utc(value):
    """Treat naive datetimes read back from the database as UTC"""
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class SelectionView:
    """One resolved selection of a candidate set"""

    game_id: int
    selected_side: str
    is_lock: bool
    source_pick_set_id: Optional[int] = None


@dataclass(frozen=True)
class CatalogEntry:
    """A candidate pick set for one (participant, week)"""

    source_kind: str
    source_discriminator: str
    pick_set_id: Optional[int]
    submitted_at: Optional[datetime]
    selections: Tuple[SelectionView, ...] = field(default_factory=tuple)
    ineligible_reason: Optional[str] = None

    @property
    def eligible(self):
        return self.ineligible_reason is None

    @property
    def is_custom(self):
        return self.source_kind == CUSTOM

    @property
    def selection_count(self):
        return len(self.selections)

    @property
    def lock_count(self):
        return sum(1 for selection in self.selections if selection.is_lock)

    @property
    def sort_key(self):
        return (
            SOURCE_KIND_ORDER.get(self.source_kind, 99),
            as_utc(self.submitted_at),
            self.source_discriminator,
        )

    def to_dict(self):
        return {
            "source_kind": self.source_kind,
            "source_discriminator": self.source_discriminator,
            "pick_set_id": self.pick_set_id,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "selection_count": self.selection_count,
            "lock_count": self.lock_count,
            "eligible": self.eligible,
            "ineligible_reason": self.ineligible_reason,
            "selections": [
                {
                    "game_id": selection.game_id,
                    "selected_side": selection.selected_side,
                    "is_lock": selection.is_lock,
                    "source_pick_set_id": selection.source_pick_set_id,
                }
                for selection in self.selections
            ],
        }


def lock_count_problem(lock_count):
    """Describe a lock count that makes a set unscoreable, or None"""
    if lock_count == 1:
        return None
    return f"expected exactly one lock, found {lock_count}"


class PickSetCatalog:
    """Read-only view over stored pick sets and custom combinations"""

    def enumerate(self, participant_id, season, week):
        """
        List the non-empty candidate sets for a participant's week

        Returns:
            list of CatalogEntry in stable order (kind, submission time,
            discriminator)
        """
        entries = []

        for pick_set in PickSet.get_for_period(participant_id, season, week):
            if not pick_set.selections:
                continue
            entries.append(self._entry_for_pick_set(pick_set))

        combination = CustomCombination.get_for_period(participant_id, season, week)
        if combination is not None and combination.choices:
            entries.append(self._entry_for_combination(combination))

        entries.sort(key=lambda entry: entry.sort_key)
        return entries

    def _entry_for_pick_set(self, pick_set):
        selections = tuple(
            SelectionView(
                game_id=selection.game_id,
                selected_side=selection.selected_side,
                is_lock=bool(selection.is_lock),
                source_pick_set_id=pick_set.id,
            )
            for selection in pick_set.selections
        )
        entry = CatalogEntry(
            source_kind=pick_set.source_kind,
            source_discriminator=pick_set.source_discriminator,
            pick_set_id=pick_set.id,
            submitted_at=pick_set.submitted_at,
            selections=selections,
        )

        problem = lock_count_problem(entry.lock_count)
        if problem:
            logger.info(
                f"Pick set {pick_set.id} ({pick_set.source_discriminator}) is ineligible: {problem}"
            )
            entry = replace(entry, ineligible_reason=problem)
        return entry

    def _entry_for_combination(self, combination):
        selections = []
        problems = []

        for choice in combination.choices:
            source = choice.source_pick_set
            source_selection = (
                source.selection_for_game(choice.game_id) if source is not None else None
            )
            if source_selection is None:
                problems.append(
                    f"pick set {choice.source_pick_set_id} has no selection for game {choice.game_id}"
                )
                continue
            selections.append(
                SelectionView(
                    game_id=choice.game_id,
                    selected_side=source_selection.selected_side,
                    # The admin's lock designation replaces the source flag
                    is_lock=choice.game_id == combination.lock_game_id,
                    source_pick_set_id=choice.source_pick_set_id,
                )
            )

        lock_problem = lock_count_problem(sum(1 for s in selections if s.is_lock))
        if lock_problem:
            problems.append(lock_problem)

        return CatalogEntry(
            source_kind=CUSTOM,
            source_discriminator=CUSTOM_DISCRIMINATOR,
            pick_set_id=None,
            submitted_at=combination.updated_at or combination.created_at,
            selections=tuple(selections),
            ineligible_reason="; ".join(problems) if problems else None,
        )

    @staticmethod
    def participants_for_period(season, week=None):
        """
        Participant ids holding any candidate in a week (or anywhere in the
        season when week is None), sorted
        """
        pick_set_query = db.session.query(PickSet.participant_id).filter(
            PickSet.season == season, PickSet.participant_id.isnot(None)
        )
        combination_query = db.session.query(CustomCombination.participant_id).filter(
            CustomCombination.season == season
        )
        if week is not None:
            pick_set_query = pick_set_query.filter(PickSet.week == week)
            combination_query = combination_query.filter(CustomCombination.week == week)

        participant_ids = {row.participant_id for row in pick_set_query.distinct()}
        participant_ids.update(row.participant_id for row in combination_query.distinct())
        return sorted(participant_ids)

    @staticmethod
    def weeks_for_participant(participant_id, season):
        """Weeks in which a participant holds any candidate, sorted"""
        weeks = {
            row.week
            for row in db.session.query(PickSet.week)
            .filter(PickSet.participant_id == participant_id, PickSet.season == season)
            .distinct()
        }
        weeks.update(
            row.week
            for row in db.session.query(CustomCombination.week)
            .filter(
                CustomCombination.participant_id == participant_id,
                CustomCombination.season == season,
            )
            .distinct()
        )
        return sorted(weeks)

    @staticmethod
    def keys_for_game(game_id):
        """
        (participant_id, season, week) for every assigned pick set holding a
        selection on a game
        """
        rows = (
            db.session.query(PickSet.participant_id, PickSet.season, PickSet.week)
            .join(PickSelection, PickSelection.pick_set_id == PickSet.id)
            .filter(PickSelection.game_id == game_id, PickSet.participant_id.isnot(None))
            .distinct()
            .all()
        )
        return sorted((row.participant_id, row.season, row.week) for row in rows)
