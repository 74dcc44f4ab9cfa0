"""
AI feature API.

Every route runs through the billable action gateway: unknown feature (400),
plan denied (403), insufficient tokens (402), then the upstream call.
"""
import logging
from typing import Dict, Iterator, List, Literal, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError

from creatorai.api.deps import get_gateway, get_image_provider, get_text_provider
from creatorai.core.auth import AuthenticatedUser, get_current_user
from creatorai.core.errors import ValidationError
from creatorai.features.ai.provider import CompletionProvider
from creatorai.features.ai import service as ai
from creatorai.features.brand.service import create_brand_profile, ensure_can_create, profile_fields_from_kit
from creatorai.features.content.service import save_content
from creatorai.features.gateway.service import ActionContext, BillableActionGateway
from creatorai.features.policy.table import parse_feature_id
from creatorai.models.feature import FeatureId

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


def _required(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("must not be empty")
    return value


def _trim(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class ThumbnailRequest(BaseModel):
    title: str = Field(..., max_length=300)
    style: Optional[str] = None
    priority: bool = False

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        return _required(value)

    @field_validator("style")
    @classmethod
    def _style(cls, value: Optional[str]) -> Optional[str]:
        return _trim(value)


class VideoIdeasRequest(BaseModel):
    topic: str
    count: int = Field(5, ge=1, le=10)

    @field_validator("topic")
    @classmethod
    def _topic(cls, value: str) -> str:
        return _required(value)


class NicheRequest(BaseModel):
    niche: str
    platform: Literal["youtube", "tiktok", "instagram"] = "youtube"

    @field_validator("niche")
    @classmethod
    def _niche(cls, value: str) -> str:
        return _required(value)


class BrandingRequest(BaseModel):
    brand_name: str = Field(..., max_length=120)
    description: str
    audience: Optional[str] = None
    save: bool = False

    @field_validator("brand_name", "description")
    @classmethod
    def _text(cls, value: str) -> str:
        return _required(value)

    @field_validator("audience")
    @classmethod
    def _audience(cls, value: Optional[str]) -> Optional[str]:
        return _trim(value)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1, max_length=50)


class GenerateRequest(BaseModel):
    prompt: str = Field(..., max_length=8000)
    language: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def _prompt(cls, value: str) -> str:
        return _required(value)

    @field_validator("language")
    @classmethod
    def _language(cls, value: Optional[str]) -> Optional[str]:
        return _trim(value)


@router.post("/thumbnails")
def create_thumbnail(
    body: ThumbnailRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: BillableActionGateway = Depends(get_gateway),
    provider: CompletionProvider = Depends(get_image_provider),
) -> Dict:
    feature = FeatureId.PRIORITY_IMAGE_GENERATION if body.priority else FeatureId.IMAGE_GENERATION
    outcome = gateway.execute(
        user.user_id,
        feature,
        lambda ctx: ai.generate_thumbnail(provider, ctx, body.title, body.style),
        action="thumbnail",
        metadata={"title": body.title},
    )
    response = outcome.to_response()
    response["contentId"] = save_content(user.user_id, feature.value, outcome.result, title=body.title)
    return response


@router.post("/video-ideas")
def create_video_ideas(
    body: VideoIdeasRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: BillableActionGateway = Depends(get_gateway),
    provider: CompletionProvider = Depends(get_text_provider),
) -> Dict:
    outcome = gateway.execute(
        user.user_id,
        FeatureId.IDEA_GENERATION,
        lambda ctx: ai.generate_video_ideas(provider, ctx, body.topic, body.count),
        action="video_ideas",
        metadata={"topic": body.topic},
    )
    response = outcome.to_response()
    response["contentId"] = save_content(user.user_id, FeatureId.IDEA_GENERATION.value, outcome.result, title=body.topic)
    return response


@router.post("/niche-analysis")
def create_niche_analysis(
    body: NicheRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: BillableActionGateway = Depends(get_gateway),
    provider: CompletionProvider = Depends(get_text_provider),
) -> Dict:
    outcome = gateway.execute(
        user.user_id,
        FeatureId.NICHE_ANALYZER,
        lambda ctx: ai.analyze_niche(provider, ctx, body.niche, body.platform),
        action="niche_analysis",
        metadata={"niche": body.niche, "platform": body.platform},
    )
    response = outcome.to_response()
    response["contentId"] = save_content(user.user_id, FeatureId.NICHE_ANALYZER.value, outcome.result, title=body.niche)
    return response


@router.post("/branding")
def create_branding_kit(
    body: BrandingRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: BillableActionGateway = Depends(get_gateway),
    provider: CompletionProvider = Depends(get_text_provider),
) -> Dict:
    """Generate a branding kit; with save=true also store it as a brand profile."""

    def precheck(ctx: ActionContext) -> None:
        if body.save:
            ensure_can_create(ctx.user_id, ctx.plan)

    outcome = gateway.execute(
        user.user_id,
        FeatureId.BRAND_PROFILE,
        lambda ctx: ai.generate_branding_kit(provider, ctx, body.brand_name, body.description, body.audience),
        action="branding_kit",
        metadata={"brandName": body.brand_name, "save": body.save},
        precheck=precheck,
    )
    response = outcome.to_response()
    response["contentId"] = save_content(
        user.user_id, FeatureId.BRAND_PROFILE.value, outcome.result, title=body.brand_name
    )
    if body.save:
        plan = gateway.ledger.get_subscription(user.user_id).plan
        profile = create_brand_profile(
            user.user_id,
            plan,
            body.brand_name,
            **profile_fields_from_kit(outcome.result["kit"]),
        )
        response["brandProfileId"] = profile.id
    return response


def _with_chat_history(user_id: str, messages: List[Dict[str, str]], deltas: Iterator[str]) -> Iterator[str]:
    """Pass deltas through; a stream that runs to the end is stored as one exchange."""
    reply = []
    for delta in deltas:
        reply.append(delta)
        yield delta

    prompt = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
    try:
        save_content(
            user_id,
            FeatureId.AI_CHAT.value,
            {"messages": messages, "reply": "".join(reply)},
            title=prompt[:80],
        )
    except SQLAlchemyError as e:
        # The reply already reached the client
        logger.warning("[chat] history save failed", extra={"user_id": user_id, "error_code": type(e).__name__})


@router.post("/chat")
def chat(
    body: ChatRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: BillableActionGateway = Depends(get_gateway),
    provider: CompletionProvider = Depends(get_text_provider),
):
    """Streaming chat (SSE). Tokens are spent before the first event; finished exchanges are kept as history."""
    messages = [message.model_dump() for message in body.messages]
    _, events = gateway.execute_stream(
        user.user_id,
        FeatureId.AI_CHAT,
        lambda ctx: _with_chat_history(ctx.user_id, messages, ai.stream_chat(provider, ctx, messages)),
        action="chat",
        metadata={"messages": len(messages)},
    )
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/generate/{feature_id}")
def generate(
    feature_id: str,
    body: GenerateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    gateway: BillableActionGateway = Depends(get_gateway),
    provider: CompletionProvider = Depends(get_text_provider),
) -> Dict:
    """Text features without a dedicated route (scripts, hooks, calendars, ...)."""
    feature = parse_feature_id(feature_id)
    if feature not in ai.TEXT_FEATURE_PROMPTS:
        raise ValidationError(f"Feature {feature.value} has a dedicated endpoint")

    outcome = gateway.execute(
        user.user_id,
        feature,
        lambda ctx: ai.generate_text(provider, ctx, body.prompt, body.language),
        action=feature.value,
        metadata={"language": body.language} if body.language else None,
    )
    response = outcome.to_response()
    response["contentId"] = save_content(user.user_id, feature.value, outcome.result, title=body.prompt[:80])
    return response
