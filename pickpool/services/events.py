"""
Events that change scoreable state

Only the operations that actually change a game's resolved result, a pick
set's selections, or an admin decision dispatch these; nothing is inferred
from generic row updates.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class GameCompleted:
    """A game's resolved result changed (completion, score correction or revert)"""

    game_id: int


@dataclass(frozen=True)
class PickSetChanged:
    """An assigned pick set was created, edited or linked to a participant"""

    participant_id: int
    season: int
    week: int


@dataclass(frozen=True)
class PreferenceChanged:
    """
    An admin preference or custom combination changed. week=None means a
    season-level preference and touches every week of the participant.
    """

    participant_id: int
    season: int
    week: Optional[int] = None


@dataclass
class RecomputeBatch:
    """
    Bookkeeping for one recompute run, passed explicitly through the
    coordinator. A key already scheduled in the batch is never processed
    again, so fan-out cannot recurse.
    """

    scheduled: set = field(default_factory=set)
    scopes: set = field(default_factory=set)
    completed: list = field(default_factory=list)
    failures: list = field(default_factory=list)

    def schedule(self, key):
        """Claim a key; False if the batch already holds it"""
        if key in self.scheduled:
            return False
        self.scheduled.add(key)
        return True

    def touch_scope(self, scope, period_key):
        self.scopes.add((scope, period_key))

    def record_failure(self, key, error):
        self.failures.append(
            {
                "key": list(key),
                "error": error.__class__.__name__,
                "message": getattr(error, "message", str(error)),
            }
        )

    @property
    def succeeded(self):
        return not self.failures

    def summary(self):
        return {
            "keys_recomputed": len(self.completed),
            "scopes_touched": sorted(f"{scope}:{key}" for scope, key in self.scopes),
            "failures": list(self.failures),
        }
