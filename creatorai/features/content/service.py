"""
Generated content store.

Artifacts are owned by the user and deletable; deleting one never touches
the usage log.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, delete

from creatorai.core.database import get_db_session, generated_content
from creatorai.core.errors import NotFoundError
from creatorai.models.content import GeneratedContent


def save_content(user_id: str, feature: str, payload: Dict[str, Any], title: Optional[str] = None) -> int:
    with get_db_session() as session:
        result = session.execute(
            insert(generated_content).values(
                user_id=user_id,
                feature=feature,
                title=title[:300] if title else None,
                payload=payload,
                created_at=datetime.now(timezone.utc),
            )
        )
        return result.inserted_primary_key[0]


def list_content(user_id: str, feature: Optional[str] = None, limit: int = 50) -> List[GeneratedContent]:
    query = select(generated_content).where(generated_content.c.user_id == user_id)
    if feature:
        query = query.where(generated_content.c.feature == feature)
    query = query.order_by(generated_content.c.created_at.desc(), generated_content.c.id.desc()).limit(max(1, min(limit, 200)))
    with get_db_session() as session:
        rows = session.execute(query).fetchall()
    return [
        GeneratedContent(
            id=row.id,
            user_id=row.user_id,
            feature=row.feature,
            title=row.title,
            payload=row.payload,
            created_at=row.created_at,
        )
        for row in rows
    ]


def delete_content(user_id: str, content_id: int) -> None:
    with get_db_session() as session:
        result = session.execute(
            delete(generated_content).where(
                generated_content.c.id == content_id,
                generated_content.c.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Content not found")
