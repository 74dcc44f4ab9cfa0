from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


class GeneratedContent(BaseModel):
    """A saved artifact of a billable action (thumbnail, idea set, analysis, kit)."""
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    feature: str
    title: Optional[str] = None
    payload: Dict[str, Any]
    created_at: datetime
