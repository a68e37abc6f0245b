import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import Unauthorized
from ..logging import bind_caller
from ..services.access import Capability, OrganizationContext, load_organization_context, require_capability


http_bearer = HTTPBearer(auto_error=False)


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, ttl_seconds: Optional[int] = None, email: Optional[str] = None) -> str:
    # Real tokens come from the auth service; this mints compatible ones for dev and tests
    return _create_token(
        user_id,
        ttl_seconds if ttl_seconds is not None else settings.jwt_ttl_seconds,
        extra={"email": email} if email else None,
    )


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")


def get_token_claims(creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)) -> dict:
    """Verified JWT claims with a string `sub`. No membership is required."""
    if creds is None:
        raise Unauthorized("Not authenticated")
    payload = decode_token(creds.credentials)
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise Unauthorized("Invalid subject")
    return payload


def get_caller(
    claims: dict = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> OrganizationContext:
    ctx = load_organization_context(db, claims["sub"])
    bind_caller(ctx.user_id, ctx.organization_id, ctx.role.value)
    return ctx


def require_capability_dep(capability: Capability):
    def _dep(ctx: OrganizationContext = Depends(get_caller)) -> OrganizationContext:
        require_capability(ctx, capability)
        return ctx

    return _dep
