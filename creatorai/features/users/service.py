"""
User domain service.
- get_or_create_user(user_id, email)
- get_user_email(user_id)
- has_role(user_id, role) / grant_role(user_id, role)
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from creatorai.core.database import get_db_session, users as app_users, user_roles

ADMIN_ROLE = "admin"


def get_or_create_user(user_id: str, email: Optional[str] = None) -> None:
    """Upsert the identity row; the email claim refreshes a stale address."""
    with get_db_session() as session:
        row = session.execute(
            select(app_users.c.email).where(app_users.c.user_id == user_id)
        ).first()
        if row is None:
            try:
                with session.begin_nested():
                    session.execute(
                        insert(app_users).values(
                            user_id=user_id,
                            email=email,
                            created_at=datetime.now(timezone.utc),
                        )
                    )
            except IntegrityError:
                # Created by a concurrent first request
                pass
        elif email and row.email != email:
            session.execute(
                update(app_users).where(app_users.c.user_id == user_id).values(email=email)
            )


def get_user_email(user_id: str) -> Optional[str]:
    with get_db_session() as session:
        return session.execute(
            select(app_users.c.email).where(app_users.c.user_id == user_id)
        ).scalar_one_or_none()


def has_role(user_id: str, role: str) -> bool:
    with get_db_session() as session:
        row = session.execute(
            select(user_roles.c.id).where(
                user_roles.c.user_id == user_id,
                user_roles.c.role == role,
            )
        ).first()
    return row is not None


def grant_role(user_id: str, role: str) -> None:
    with get_db_session() as session:
        try:
            with session.begin_nested():
                session.execute(insert(user_roles).values(user_id=user_id, role=role))
        except IntegrityError:
            pass
