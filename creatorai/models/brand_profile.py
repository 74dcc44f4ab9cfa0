from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict


class BrandProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    brand_name: str
    brand_voice: Optional[str] = None
    target_audience: Optional[str] = None
    keywords: Optional[List[str]] = None
    color_palette: Optional[List[str]] = None
    tone_settings: Optional[Dict[str, Any]] = None
    is_active: bool = False
    created_at: datetime
