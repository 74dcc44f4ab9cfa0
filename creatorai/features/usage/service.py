"""
Usage log service.

Append-only record of token spends. Writes are best-effort telemetry: a
failure is logged and swallowed so it can never unwind a committed deduction.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, func

from creatorai.core.database import get_db_session, token_usage_logs
from creatorai.models.subscription import as_utc
from creatorai.models.usage import UsageLogEntry


logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 200


def record_usage(
    user_id: str,
    action: str,
    feature: str,
    amount: int,
    metadata: Optional[Dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> Optional[int]:
    """
    Append a usage entry. Never raises.

    Returns:
        The new row id, or None if the write failed
    """
    created_at = as_utc(occurred_at) if occurred_at else datetime.now(timezone.utc)
    try:
        with get_db_session() as session:
            result = session.execute(
                insert(token_usage_logs).values(
                    user_id=user_id,
                    action=action,
                    feature=feature,
                    tokens_used=amount,
                    metadata=metadata or {},
                    created_at=created_at,
                )
            )
            entry_id = result.inserted_primary_key[0]
    except Exception:
        logger.error(
            "[usage] record failed",
            exc_info=True,
            extra={"user_id": user_id, "feature": feature, "amount": amount, "error_code": "usage_record_failed"},
        )
        return None
    return entry_id


class UsageRecorder:
    """Injectable wrapper so the gateway does not depend on module globals."""

    def record(self, user_id: str, action: str, feature: str, amount: int, metadata: Optional[Dict[str, Any]] = None) -> Optional[int]:
        return record_usage(user_id, action, feature, amount, metadata)


def list_usage(user_id: str, limit: int = 50, feature: Optional[str] = None) -> List[UsageLogEntry]:
    """Token history, newest first."""
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))
    query = select(token_usage_logs).where(token_usage_logs.c.user_id == user_id)
    if feature:
        query = query.where(token_usage_logs.c.feature == feature)
    query = query.order_by(token_usage_logs.c.created_at.desc(), token_usage_logs.c.id.desc()).limit(limit)

    with get_db_session() as session:
        rows = session.execute(query).fetchall()

    return [
        UsageLogEntry(
            id=row.id,
            user_id=row.user_id,
            action=row.action,
            feature=row.feature,
            tokens_used=row.tokens_used,
            metadata=row.metadata,
            created_at=row.created_at,
        )
        for row in rows
    ]


def summarize_usage(user_id: str, since: Optional[datetime] = None) -> Dict[str, Any]:
    """Tokens spent per feature (net of refunds) for the analytics view."""
    query = (
        select(
            token_usage_logs.c.feature,
            func.count(token_usage_logs.c.id).label("actions"),
            func.coalesce(func.sum(token_usage_logs.c.tokens_used), 0).label("tokens"),
        )
        .where(token_usage_logs.c.user_id == user_id)
        .group_by(token_usage_logs.c.feature)
    )
    if since is not None:
        query = query.where(token_usage_logs.c.created_at >= as_utc(since))

    with get_db_session() as session:
        rows = session.execute(query).fetchall()

    by_feature = {row.feature: {"actions": int(row.actions), "tokens": int(row.tokens)} for row in rows}
    return {
        "totalTokens": sum(item["tokens"] for item in by_feature.values()),
        "totalActions": sum(item["actions"] for item in by_feature.values()),
        "byFeature": by_feature,
    }
