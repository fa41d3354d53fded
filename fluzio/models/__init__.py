from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

def init_db(app):
    """Initialize database with app"""
    db.init_app(app)

from .business import BusinessProfile, SubscriptionLevel
from .mission import Complexity, LifecycleStatus, Mission, MissionType
from .participation import Participation, ParticipationStatus
from .points import UserPointsBalance

__all__ = [
    'db',
    'init_db',
    'BusinessProfile',
    'SubscriptionLevel',
    'Complexity',
    'LifecycleStatus',
    'Mission',
    'MissionType',
    'Participation',
    'ParticipationStatus',
    'UserPointsBalance',
]
