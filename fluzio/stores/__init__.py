from .base import Deadline, commit, rollback, store_call
from .collaborators import BusinessDirectory, PointsLedger
from .mission_store import MissionStore
from .participation_store import ParticipationStore

__all__ = [
    "BusinessDirectory",
    "Deadline",
    "MissionStore",
    "ParticipationStore",
    "PointsLedger",
    "commit",
    "rollback",
    "store_call",
]
