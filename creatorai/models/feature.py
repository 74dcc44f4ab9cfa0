"""
creatorai/models/feature.py

Feature catalog types.

Access to a feature is a three-way tag rather than a boolean: LIMITED means
the action runs with degraded output (shorter responses, watermarks).
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict

from creatorai.models.plan import Plan


class FeatureId(str, Enum):
    IDEA_GENERATION = "idea_generation"
    HOOK_GENERATOR = "hook_generator"
    SHORT_SCRIPTS = "short_scripts"
    LONG_SCRIPTS = "long_scripts"
    THUMBNAIL_PROMPTS = "thumbnail_prompts"
    IMAGE_GENERATION = "image_generation"
    ADVANCED_VIDEO_SCRIPTING = "advanced_video_scripting"
    CONTENT_CALENDAR = "content_calendar"
    BATCH_GENERATION = "batch_generation"
    ADVANCED_PROMPT_CONTROLS = "advanced_prompt_controls"
    MULTI_LANGUAGE = "multi_language"
    PRIORITY_IMAGE_GENERATION = "priority_image_generation"
    BRAND_PROFILE = "brand_profile"
    AI_CHAT = "ai_chat"
    NICHE_ANALYZER = "niche_analyzer"
    CONTENT_ANALYTICS = "content_analytics"


class AccessTier(str, Enum):
    FULL = "FULL"
    LIMITED = "LIMITED"
    DENIED = "DENIED"

    @property
    def allowed(self) -> bool:
        return self is not AccessTier.DENIED


class Entitlement(BaseModel):
    """Resolved access for one (feature, plan) pair."""
    model_config = ConfigDict(frozen=True)

    feature_id: FeatureId
    plan: Plan
    access_tier: AccessTier
    required_plan_for_full: Plan
    token_cost: int


class FeatureCost(BaseModel):
    model_config = ConfigDict(frozen=True)

    feature_id: FeatureId
    feature_name: str
    description: str | None = None
    token_cost: int
    is_default: bool = True
