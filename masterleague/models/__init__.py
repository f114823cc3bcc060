from masterleague import db  # noqa: F401 - imported for model imports

from .fixture import Fixture
from .group import Group
from .group_member import GroupMember
from .leaderboard import LeaderboardEntry, LeaderboardMeta
from .prediction import Prediction
from .season import Season
from .sync_state import SyncState
from .team import Team
from .user import User

__all__ = [
    "User",
    "Group",
    "GroupMember",
    "Season",
    "Team",
    "Fixture",
    "Prediction",
    "LeaderboardEntry",
    "LeaderboardMeta",
    "SyncState",
]
