"""
Brand profile service.

Profile count is capped per plan (FREE=0, CREATOR=1, PRO=10). Creates lock
the owner's subscription row so the count check and insert cannot interleave.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, update, delete, func

from creatorai.core.database import get_db_session, brand_profiles, subscriptions
from creatorai.core.errors import BrandProfileLimitError, NotFoundError
from creatorai.models.brand_profile import BrandProfile
from creatorai.models.plan import Plan, brand_profile_limit_for


logger = logging.getLogger(__name__)


def _to_model(row) -> BrandProfile:
    return BrandProfile(
        id=row.id,
        user_id=row.user_id,
        brand_name=row.brand_name,
        brand_voice=row.brand_voice,
        target_audience=row.target_audience,
        keywords=row.keywords,
        color_palette=row.color_palette,
        tone_settings=row.tone_settings,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def count_brand_profiles(user_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(brand_profiles).where(brand_profiles.c.user_id == user_id)
        ).scalar_one()


def ensure_can_create(user_id: str, plan: Plan) -> None:
    limit = brand_profile_limit_for(plan)
    if count_brand_profiles(user_id) >= limit:
        raise BrandProfileLimitError(
            f"Your {Plan(plan).value} plan allows {limit} brand profile(s)",
            details={"limit": limit},
        )


def create_brand_profile(user_id: str, plan: Plan, brand_name: str, **fields: Any) -> BrandProfile:
    """
    Create a profile if the plan's count limit allows it.

    Raises:
        BrandProfileLimitError: If the user is already at the limit
    """
    limit = brand_profile_limit_for(plan)
    with get_db_session() as session:
        # Serialize creates per user on the subscription row
        session.execute(
            select(subscriptions.c.user_id)
            .where(subscriptions.c.user_id == user_id)
            .with_for_update()
        )
        current_count = session.execute(
            select(func.count()).select_from(brand_profiles).where(brand_profiles.c.user_id == user_id)
        ).scalar_one()
        if current_count >= limit:
            raise BrandProfileLimitError(
                f"Your {Plan(plan).value} plan allows {limit} brand profile(s)",
                details={"limit": limit},
            )
        result = session.execute(
            insert(brand_profiles).values(
                user_id=user_id,
                brand_name=brand_name,
                brand_voice=fields.get("brand_voice"),
                target_audience=fields.get("target_audience"),
                keywords=fields.get("keywords"),
                color_palette=fields.get("color_palette"),
                tone_settings=fields.get("tone_settings"),
                is_active=False,
                created_at=datetime.now(timezone.utc),
            )
        )
        row = session.execute(
            select(brand_profiles).where(brand_profiles.c.id == result.inserted_primary_key[0])
        ).first()

    logger.info("[brand] profile created", extra={"user_id": user_id, "plan": Plan(plan).value})
    return _to_model(row)


def list_brand_profiles(user_id: str) -> List[BrandProfile]:
    with get_db_session() as session:
        rows = session.execute(
            select(brand_profiles)
            .where(brand_profiles.c.user_id == user_id)
            .order_by(brand_profiles.c.created_at.desc(), brand_profiles.c.id.desc())
        ).fetchall()
    return [_to_model(row) for row in rows]


def set_active_brand_profile(user_id: str, profile_id: int) -> BrandProfile:
    with get_db_session() as session:
        owned = session.execute(
            select(brand_profiles.c.id).where(
                brand_profiles.c.id == profile_id,
                brand_profiles.c.user_id == user_id,
            )
        ).first()
        if owned is None:
            raise NotFoundError("Brand profile not found")
        session.execute(
            update(brand_profiles)
            .where(brand_profiles.c.user_id == user_id)
            .values(is_active=(brand_profiles.c.id == profile_id))
        )
        row = session.execute(select(brand_profiles).where(brand_profiles.c.id == profile_id)).first()
    return _to_model(row)


def delete_brand_profile(user_id: str, profile_id: int) -> None:
    with get_db_session() as session:
        result = session.execute(
            delete(brand_profiles).where(
                brand_profiles.c.id == profile_id,
                brand_profiles.c.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Brand profile not found")


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _string_list(value: Any) -> Optional[List[str]]:
    """Keep string entries; palette entries like {"hex": "#000"} collapse to their hex."""
    if not isinstance(value, list):
        return None
    items = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("hex")
        if isinstance(item, str) and item.strip():
            items.append(item.strip())
    return items or None


def _tone_settings(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, dict):
        return value
    text = _text(value)
    return {"description": text} if text else None


def profile_fields_from_kit(kit: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map a generated branding kit onto brand profile columns.

    Model output is untrusted, so each value is coerced to its column's shape
    or dropped.
    """
    return {
        "brand_voice": _text(kit.get("brandVoice")),
        "target_audience": _text(kit.get("targetAudience")),
        "keywords": _string_list(kit.get("keywords")),
        "color_palette": _string_list(kit.get("colorPalette")),
        "tone_settings": _tone_settings(kit.get("toneSettings")),
    }
