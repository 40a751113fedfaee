"""Authentication: verify identity-provider JWTs and load the user row.

Tokens are HS256-signed by the hosted auth service with ``SUPABASE_JWT_SECRET``
and carry the user id in ``sub``. The local ``users`` row is upserted on
every authenticated request so foreign keys always resolve.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from backend import config
from backend.database import get_db
from backend.models_db import User
from backend.repositories import UserRepository

ALGORITHM = "HS256"

# Security scheme
security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT; returns its claims, or None if invalid."""
    if not config.SUPABASE_JWT_SECRET:
        raise HTTPException(status_code=500, detail="SUPABASE_JWT_SECRET not configured")
    try:
        claims = jwt.decode(
            token,
            config.SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=config.JWT_AUDIENCE,
        )
    except JWTError:
        return None
    if not claims.get("sub"):
        return None
    return claims


def _load_user(claims: dict, db: Session) -> User:
    user = UserRepository(db).upsert(claims["sub"], claims.get("email"))
    db.commit()
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency: require valid JWT, return user."""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    claims = decode_token(credentials.credentials)
    if not claims:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    return _load_user(claims, db)


async def optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """FastAPI dependency: return user if token valid, None otherwise."""
    if not credentials:
        return None
    claims = decode_token(credentials.credentials)
    if not claims:
        return None
    return _load_user(claims, db)

