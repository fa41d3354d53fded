"""Catalogue of standard missions a business can activate with one tap."""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import NotFoundError
from ..models.mission import MissionType


@dataclass(frozen=True)
class StandardMissionTemplate:
    """Business-independent definition of a standard mission."""

    key: str
    title: str
    description: str
    mission_type: MissionType
    default_reward: int
    validity_days: int = 30

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "title": self.title,
            "description": self.description,
            "mission_type": self.mission_type.value,
            "default_reward": self.default_reward,
            "validity_days": self.validity_days,
        }


STANDARD_MISSION_TEMPLATES = {
    "CHECKIN_VISIT": StandardMissionTemplate(
        key="CHECKIN_VISIT",
        title="First Visit Check-In",
        description="Visit the location and scan the QR code to earn points.",
        mission_type=MissionType.IN_PERSON,
        default_reward=50,
    ),
    "REPEAT_VISITOR": StandardMissionTemplate(
        key="REPEAT_VISITOR",
        title="Loyalty Rewards",
        description="Visit 5 times this month and earn bonus points.",
        mission_type=MissionType.IN_PERSON,
        default_reward=250,
    ),
    "BRING_A_FRIEND": StandardMissionTemplate(
        key="BRING_A_FRIEND",
        title="Bring a Friend",
        description="Come by with a friend who has never visited before.",
        mission_type=MissionType.IN_PERSON,
        default_reward=150,
    ),
    "FOLLOW_BUSINESS": StandardMissionTemplate(
        key="FOLLOW_BUSINESS",
        title="Follow Us in the App",
        description="Follow the business profile to hear about new missions first.",
        mission_type=MissionType.FOLLOW_BUSINESS_APP,
        default_reward=25,
    ),
    "GOOGLE_REVIEW": StandardMissionTemplate(
        key="GOOGLE_REVIEW",
        title="Leave a Google Review",
        description="Share an honest review of your visit.",
        mission_type=MissionType.WRITE_REVIEW_APP,
        default_reward=100,
    ),
    "GOOGLE_REVIEW_PHOTOS": StandardMissionTemplate(
        key="GOOGLE_REVIEW_PHOTOS",
        title="Google Review with Photos",
        description="Review your visit and attach at least one photo.",
        mission_type=MissionType.REVIEW_WITH_PHOTO_APP,
        default_reward=150,
    ),
    "INSTAGRAM_STORY": StandardMissionTemplate(
        key="INSTAGRAM_STORY",
        title="Share on Instagram Story",
        description="Post a story tagging the business.",
        mission_type=MissionType.SHARE_PHOTO_APP,
        default_reward=75,
    ),
    "INSTAGRAM_POST": StandardMissionTemplate(
        key="INSTAGRAM_POST",
        title="Post on Instagram Feed",
        description="Publish a feed post or reel tagging the business.",
        mission_type=MissionType.SHARE_PHOTO_APP,
        default_reward=150,
    ),
}


def get_template(key: str) -> StandardMissionTemplate:
    template = STANDARD_MISSION_TEMPLATES.get((key or "").strip().upper())
    if template is None:
        raise NotFoundError(f"Unknown standard mission template {key!r}", template=key)
    return template


def list_templates() -> list[StandardMissionTemplate]:
    return list(STANDARD_MISSION_TEMPLATES.values())


__all__ = [
    "STANDARD_MISSION_TEMPLATES",
    "StandardMissionTemplate",
    "get_template",
    "list_templates",
]
