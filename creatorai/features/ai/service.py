"""
AI feature actions.

Each function builds a provider request for one catalog feature and shapes
the provider output into a result payload. Token accounting happens in the
gateway; these functions only run inside `invoke` callbacks.
"""
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

from creatorai.core.errors import UpstreamFailure
from creatorai.features.ai.provider import CompletionProvider, CompletionRequest
from creatorai.features.entitlements.service import show_watermark
from creatorai.features.gateway.service import ActionContext
from creatorai.models.feature import FeatureId


logger = logging.getLogger(__name__)

FULL_MAX_TOKENS = 1500
LIMITED_MAX_TOKENS = 400
LIMITED_HINT = "Keep the answer brief: at most three items or a short paragraph."

_JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_JSON_OBJECT = re.compile(r"(\{.*\}|\[.*\])", re.DOTALL)

CHAT_SYSTEM = (
    "You are CreatorAI Assistant, an expert coach for YouTube and short-form video "
    "creators. Give concrete, actionable advice on content strategy, titles, hooks, "
    "thumbnails, growth and monetization."
)

NICHE_SYSTEM = (
    "You are a YouTube market analyst. Respond with a JSON object with keys: "
    "overview, competition (low|medium|high), audience, contentGaps (list), "
    "videoIdeas (list), monetization (list), growthTips (list)."
)

BRANDING_SYSTEM = (
    "You are a brand designer for online creators. Respond with a JSON object with "
    "keys: brandVoice, targetAudience, colorPalette (list of hex colors), "
    "keywords (list), taglines (list), toneSettings (object)."
)

IDEAS_SYSTEM = (
    "You generate video ideas for creators. Respond with a JSON object "
    '{"ideas": [{"title": str, "hook": str, "description": str}]}.'
)

THUMBNAIL_SYSTEM = (
    "You design eye-catching YouTube thumbnails: bold readable text, strong "
    "contrast, expressive faces, 16:9 composition."
)

TEXT_FEATURE_PROMPTS: Dict[FeatureId, str] = {
    FeatureId.HOOK_GENERATOR: "Write scroll-stopping opening hooks for a video on the given topic.",
    FeatureId.SHORT_SCRIPTS: "Write a 30-60 second short-form video script with hook, body and call to action.",
    FeatureId.LONG_SCRIPTS: "Write a structured long-form YouTube script with intro, sections and outro.",
    FeatureId.THUMBNAIL_PROMPTS: "Write detailed image-generation prompts for YouTube thumbnails.",
    FeatureId.ADVANCED_VIDEO_SCRIPTING: "Write a production-ready script with shot list, b-roll notes and pacing cues.",
    FeatureId.CONTENT_CALENDAR: "Plan a 4-week content calendar with dates, formats and topics.",
    FeatureId.BATCH_GENERATION: "Produce ten distinct ready-to-film video concepts with titles and hooks.",
    FeatureId.ADVANCED_PROMPT_CONTROLS: "Follow the user's style, tone and format instructions exactly.",
    FeatureId.MULTI_LANGUAGE: "Translate and culturally adapt the given content into the requested language.",
    FeatureId.CONTENT_ANALYTICS: "Analyse the provided channel metrics and recommend concrete improvements.",
}


def extract_json(text: str) -> Any:
    """Pull a JSON value out of model text (fenced, bare or embedded)."""
    candidates = [text.strip()]
    fenced = _JSON_FENCE.search(text)
    if fenced:
        candidates.insert(0, fenced.group(1).strip())
    embedded = _JSON_OBJECT.search(text)
    if embedded:
        candidates.append(embedded.group(1))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    logger.info("[ai] response was not JSON, returning raw text")
    return {"raw": text}


def _request(ctx: ActionContext, system: str, user_content: str, *, json_output: bool = False) -> CompletionRequest:
    if ctx.limited:
        system = f"{system}\n{LIMITED_HINT}"
    return CompletionRequest.single(
        system,
        user_content,
        json_output=json_output,
        max_tokens=LIMITED_MAX_TOKENS if ctx.limited else FULL_MAX_TOKENS,
    )


def generate_video_ideas(provider: CompletionProvider, ctx: ActionContext, topic: str, count: int = 5) -> Dict[str, Any]:
    count = max(1, min(count, 10))
    content = f"Topic: {topic}\nNumber of ideas: {count}"
    parsed = extract_json(provider.complete(_request(ctx, IDEAS_SYSTEM, content, json_output=True)).text)
    ideas = parsed.get("ideas", []) if isinstance(parsed, dict) else parsed
    if not isinstance(ideas, list):
        ideas = []
    return {"topic": topic, "ideas": ideas[:count]}


def analyze_niche(provider: CompletionProvider, ctx: ActionContext, niche: str, platform: str = "youtube") -> Dict[str, Any]:
    content = f"Niche: {niche}\nPlatform: {platform}"
    analysis = extract_json(provider.complete(_request(ctx, NICHE_SYSTEM, content, json_output=True)).text)
    return {"niche": niche, "platform": platform, "analysis": analysis}


def generate_branding_kit(
    provider: CompletionProvider,
    ctx: ActionContext,
    brand_name: str,
    description: str,
    audience: Optional[str] = None,
) -> Dict[str, Any]:
    content = f"Brand name: {brand_name}\nAbout: {description}"
    if audience:
        content += f"\nAudience: {audience}"
    kit = extract_json(provider.complete(_request(ctx, BRANDING_SYSTEM, content, json_output=True)).text)
    if not isinstance(kit, dict):
        kit = {"raw": kit}
    return {"brandName": brand_name, "kit": kit}


def generate_thumbnail(provider: CompletionProvider, ctx: ActionContext, title: str, style: Optional[str] = None) -> Dict[str, Any]:
    prompt = f"Create a YouTube thumbnail for a video titled: {title}"
    if style:
        prompt += f"\nStyle: {style}"
    result = provider.complete(CompletionRequest.single(THUMBNAIL_SYSTEM, prompt))
    if not result.images:
        raise UpstreamFailure("AI provider returned no image")
    return {
        "title": title,
        "imageUrl": result.images[0],
        "prompt": prompt,
        "watermark": show_watermark(ctx.plan),
    }


def generate_text(provider: CompletionProvider, ctx: ActionContext, prompt: str, language: Optional[str] = None) -> Dict[str, Any]:
    system = TEXT_FEATURE_PROMPTS.get(ctx.feature_id, CHAT_SYSTEM)
    if language:
        system = f"{system}\nRespond in {language}."
    result = provider.complete(_request(ctx, system, prompt))
    return {"feature": ctx.feature_id.value, "text": result.text}


def stream_chat(provider: CompletionProvider, ctx: ActionContext, messages: List[Dict[str, str]]) -> Iterator[str]:
    request = CompletionRequest(
        system=f"{CHAT_SYSTEM}\n{LIMITED_HINT}" if ctx.limited else CHAT_SYSTEM,
        messages=messages,
        max_tokens=LIMITED_MAX_TOKENS if ctx.limited else FULL_MAX_TOKENS,
    )
    return provider.stream(request)
