from pickpool import db  # noqa: F401 - imported for model imports

from .admin_action import AdminAction
from .custom_combination import CustomCombination, CustomCombinationChoice
from .game import Game
from .leaderboard_entry import LeaderboardEntry
from .participant import Participant
from .pick_set import PickSelection, PickSet
from .pick_set_preference import PickSetPreference

__all__ = [
    "Participant",
    "Game",
    "PickSet",
    "PickSelection",
    "PickSetPreference",
    "CustomCombination",
    "CustomCombinationChoice",
    "LeaderboardEntry",
    "AdminAction",
]
