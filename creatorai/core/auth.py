"""
Auth utilities.

Validates bearer JWTs from the identity provider and resolves the caller.
Fails closed: no credential, no ledger access. First sight of a user
provisions the app user row and the FREE subscription.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from fastapi import Depends, Header, Request
import jwt

from creatorai.core.config import settings
from creatorai.core.errors import PermissionError, UnauthenticatedError
from creatorai.features.tokens.ledger import TokenLedger, get_ledger
from creatorai.features.users.service import ADMIN_ROLE, get_or_create_user, has_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    email: Optional[str] = None


def verify_jwt(token: str) -> Dict[str, Any]:
    """
    Verify a bearer JWT and return its claims.

    Raises:
        UnauthenticatedError: Missing configuration, expired or invalid token
    """
    if not settings.AUTH_JWT_SECRET:
        logger.error("[auth] AUTH_JWT_SECRET not configured, rejecting request")
        raise UnauthenticatedError("Authentication is not configured")

    algorithms = [alg.strip() for alg in settings.AUTH_JWT_ALGORITHMS.split(",") if alg.strip()]
    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=algorithms,
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthenticatedError("Invalid token")

    if not payload.get("sub"):
        raise UnauthenticatedError("Invalid token")
    return payload


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise UnauthenticatedError("Missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthenticatedError("Missing bearer token")
    return token.strip()


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    ledger: TokenLedger = Depends(get_ledger),
) -> AuthenticatedUser:
    """
    Resolve the caller from the Authorization header.

    After successful auth, upsert the user and make sure a subscription exists.
    """
    claims = verify_jwt(_bearer_token(authorization))
    user = AuthenticatedUser(user_id=claims["sub"], email=claims.get("email"))

    get_or_create_user(user.user_id, user.email)
    ledger.ensure_subscription(user.user_id)

    request.state.user_id = user.user_id
    return user


def require_admin(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if not has_role(user.user_id, ADMIN_ROLE):
        raise PermissionError("Admin role required")
    return user
