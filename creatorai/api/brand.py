"""
Brand profile API.

Creation is capped per plan; the cap is enforced in the service.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from creatorai.core.auth import AuthenticatedUser, get_current_user
from creatorai.features.brand.service import (
    create_brand_profile,
    delete_brand_profile,
    list_brand_profiles,
    set_active_brand_profile,
)
from creatorai.features.tokens.ledger import TokenLedger, get_ledger

router = APIRouter(prefix="/api/brand-profiles", tags=["brand"])


class BrandProfileIn(BaseModel):
    brand_name: str = Field(..., max_length=120)
    brand_voice: Optional[str] = None
    target_audience: Optional[str] = None
    keywords: Optional[List[str]] = None
    color_palette: Optional[List[str]] = None
    tone_settings: Optional[Dict[str, Any]] = None

    @field_validator("brand_name")
    @classmethod
    def _name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("brand_name is required")
        return value

    @field_validator("brand_voice", "target_audience")
    @classmethod
    def _trim(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


@router.get("")
def get_profiles(user: AuthenticatedUser = Depends(get_current_user)) -> Dict:
    return {"profiles": [p.model_dump(mode="json") for p in list_brand_profiles(user.user_id)]}


@router.post("", status_code=201)
def create_profile(
    body: BrandProfileIn,
    user: AuthenticatedUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
) -> Dict:
    plan = ledger.get_subscription(user.user_id).plan
    fields = body.model_dump(exclude={"brand_name"})
    profile = create_brand_profile(user.user_id, plan, body.brand_name, **fields)
    return profile.model_dump(mode="json")


@router.post("/{profile_id}/activate")
def activate_profile(profile_id: int, user: AuthenticatedUser = Depends(get_current_user)) -> Dict:
    return set_active_brand_profile(user.user_id, profile_id).model_dump(mode="json")


@router.delete("/{profile_id}")
def remove_profile(profile_id: int, user: AuthenticatedUser = Depends(get_current_user)) -> Dict:
    delete_brand_profile(user.user_id, profile_id)
    return {"success": True}
