"""
Pick set selector

The only place that decides which candidate pick set is authoritative for a
participant's week. Order of precedence:

1. a week-level PickSetPreference
2. the admin's custom combination for that week
3. a season-level PickSetPreference
4. default: the authenticated set, else the oldest anonymous set
"""

import logging
from dataclasses import dataclass
from typing import Optional

from pickpool.errors import ConflictError
from pickpool.models import PickSetPreference
from pickpool.models.pick_set import ANONYMOUS, AUTHENTICATED
from pickpool.services.pick_set_catalog import CatalogEntry, PickSetCatalog, as_utc

logger = logging.getLogger(__name__)

WEEK_PREFERENCE = "week"
SEASON_PREFERENCE = "season"
CUSTOM_COMBINATION = "custom_combination"


@dataclass(frozen=True)
class AuthoritativeSelection:
    """The candidate chosen for a (participant, week) and why"""

    entry: CatalogEntry
    is_admin_override: bool
    decided_by: Optional[str] = None  # 'week', 'season', 'custom_combination' or None

    @property
    def source_kind(self):
        return self.entry.source_kind

    @property
    def source_discriminator(self):
        return self.entry.source_discriminator

    def to_dict(self):
        return {
            "source_kind": self.source_kind,
            "source_discriminator": self.source_discriminator,
            "is_admin_override": self.is_admin_override,
            "decided_by": self.decided_by or "default",
            "pick_set_id": self.entry.pick_set_id,
        }


def _oldest(entries):
    return min(
        entries, key=lambda entry: (as_utc(entry.submitted_at), entry.source_discriminator)
    )


def match_preference(entries, pinned):
    """
    Find the eligible candidate a pinned value refers to.

    A pin matches a discriminator exactly, or failing that a source kind
    ('authenticated', 'anonymous', 'custom'); a kind pin on anonymous sets
    resolves to the oldest one.

    Raises:
        ConflictError: if the pin is ambiguous
    """
    exact = [entry for entry in entries if entry.source_discriminator == pinned]
    if len(exact) > 1:
        raise ConflictError(
            f"Preference '{pinned}' matches {len(exact)} pick sets",
            {"pinned": pinned},
        )
    if exact:
        return exact[0]

    by_kind = [entry for entry in entries if entry.source_kind == pinned]
    if not by_kind:
        return None
    if pinned == ANONYMOUS:
        return _oldest(by_kind)
    if len(by_kind) > 1:
        raise ConflictError(
            f"Preference '{pinned}' matches {len(by_kind)} pick sets",
            {"pinned": pinned},
        )
    return by_kind[0]


def default_selection(entries):
    """
    Apply default precedence: authenticated beats anonymous, oldest anonymous
    wins among anonymous sets.

    Raises:
        ConflictError: on two authenticated sets, or when candidates exist but
            none of them is eligible
    """
    authenticated = [entry for entry in entries if entry.source_kind == AUTHENTICATED]
    if len(authenticated) > 1:
        raise ConflictError(
            "Multiple authenticated pick sets for one week",
            {"discriminators": [entry.source_discriminator for entry in authenticated]},
        )

    eligible_authenticated = [entry for entry in authenticated if entry.eligible]
    if eligible_authenticated:
        return eligible_authenticated[0]

    eligible_anonymous = [
        entry for entry in entries if entry.source_kind == ANONYMOUS and entry.eligible
    ]
    if eligible_anonymous:
        return _oldest(eligible_anonymous)

    return None


def choose(entries, week_preference=None, season_preference=None):
    """
    Pure precedence decision over catalog entries.

    Args:
        entries: CatalogEntry list for one (participant, week)
        week_preference: pinned value of the week-level preference, or None
        season_preference: pinned value of the season-level preference, or None

    Returns:
        AuthoritativeSelection, or None when the participant has no candidates

    Raises:
        ConflictError: when no authoritative set can be decided
    """
    if not entries:
        return None

    eligible = [entry for entry in entries if entry.eligible]

    if week_preference:
        match = match_preference(eligible, week_preference)
        if match is None:
            raise ConflictError(
                f"Week preference '{week_preference}' matches no eligible pick set",
                {"pinned": week_preference},
            )
        return AuthoritativeSelection(match, True, WEEK_PREFERENCE)

    custom = [entry for entry in entries if entry.is_custom]
    if custom:
        if not custom[0].eligible:
            raise ConflictError(
                f"Custom combination is not scoreable: {custom[0].ineligible_reason}",
                {"reason": custom[0].ineligible_reason},
            )
        return AuthoritativeSelection(custom[0], True, CUSTOM_COMBINATION)

    if season_preference:
        match = match_preference(eligible, season_preference)
        if match is not None:
            return AuthoritativeSelection(match, True, SEASON_PREFERENCE)

    match = default_selection(entries)
    if match is None:
        reasons = sorted(
            {entry.ineligible_reason for entry in entries if entry.ineligible_reason}
        )
        raise ConflictError(
            "No eligible pick set: " + "; ".join(reasons),
            {"reasons": reasons},
        )
    return AuthoritativeSelection(match, False, None)


class PickSetSelector:
    """Chooses one authoritative pick set per (participant, week)"""

    def __init__(self, catalog=None):
        self.catalog = catalog or PickSetCatalog()

    def select(self, participant_id, season, week, entries=None):
        """
        Get the authoritative selection for a participant's week

        Returns:
            AuthoritativeSelection, or None when there is nothing to score

        Raises:
            ConflictError: when the decision needs an admin
        """
        if entries is None:
            entries = self.catalog.enumerate(participant_id, season, week)

        week_preference, season_preference = PickSetPreference.get_effective(
            participant_id, season, week
        )

        try:
            return choose(
                entries,
                week_preference=(
                    week_preference.preferred_discriminator if week_preference else None
                ),
                season_preference=(
                    season_preference.preferred_discriminator
                    if season_preference
                    else None
                ),
            )
        except ConflictError as e:
            e.details.update(
                {"participant_id": participant_id, "season": season, "week": week}
            )
            logger.warning(
                f"Pick set conflict for participant {participant_id} "
                f"({season} week {week}): {e.message}"
            )
            raise
