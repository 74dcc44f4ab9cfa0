"""
creatorai/models/usage.py

UsageLogEntry model: one immutable row per successful token deduction.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, field_validator

from creatorai.models.subscription import as_utc


class UsageLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    action: str
    feature: str
    tokens_used: int
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "feature": self.feature,
            "tokensUsed": self.tokens_used,
            "metadata": self.metadata or {},
            "createdAt": self.created_at.isoformat(),
        }
