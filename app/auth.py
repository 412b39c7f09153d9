"""
Authentication: bcrypt password hashes, JWT bearer tokens and the session user
dependency every protected route resolves.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import false
from sqlalchemy.orm import Query, Session

from app.config import settings
from app.database import get_db
from app.models import User, UserRole, Venue
from app.services.venues import ensure_venue, slugify

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class SessionUser:
    user_id: int
    role: UserRole
    email: str
    name: Optional[str] = None
    venue_ids: List[int] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def can_access_venue(self, venue_id: Optional[int]) -> bool:
        return self.is_admin or (venue_id is not None and venue_id in self.venue_ids)


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "sub": str(to_encode.get("sub"))})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.AUTH_ALGORITHM)


def session_user_from(user: User) -> SessionUser:
    return SessionUser(
        user_id=user.id,
        role=user.role,
        email=user.email,
        name=user.name,
        venue_ids=sorted(v.id for v in user.venues),
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> SessionUser:
    """Resolve the bearer token into a session user"""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise unauthorized
    try:
        payload = jwt.decode(credentials.credentials, settings.JWT_SECRET, algorithms=[settings.AUTH_ALGORITHM])
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise unauthorized

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise unauthorized
    return session_user_from(user)


async def require_admin(current_user: SessionUser = Depends(get_current_user)) -> SessionUser:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return current_user


def scope_to_venues(query: Query, venue_column, current_user: SessionUser) -> Query:
    """Admins see every row; users only rows of their venues (none if they have no venues)."""
    if current_user.is_admin:
        return query
    if not current_user.venue_ids:
        return query.filter(false())
    return query.filter(venue_column.in_(current_user.venue_ids))


def ensure_venue_access(current_user: SessionUser, venue_id: Optional[int]) -> None:
    if not current_user.can_access_venue(venue_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Venue not accessible")


def target_venue_id(db: Session, current_user: SessionUser, venue_id: Optional[int], venue_name: Optional[str]) -> int:
    """Venue new orders are written to; created by name if needed, committed only once access is confirmed."""
    if venue_id is not None:
        if not db.query(Venue.id).filter(Venue.id == venue_id).first():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")
    elif venue_name and venue_name.strip():
        existing = db.query(Venue.id).filter(Venue.slug == slugify(venue_name)).first()
        if existing:
            venue_id = existing[0]
        else:
            ensure_venue_access(current_user, None)
            venue_id = ensure_venue(db, venue_name).id
    elif not current_user.is_admin and current_user.venue_ids:
        venue_id = current_user.venue_ids[0]
    else:
        venue_id = ensure_venue(db, settings.DEFAULT_VENUE_NAME).id
    ensure_venue_access(current_user, venue_id)
    db.commit()
    return venue_id
