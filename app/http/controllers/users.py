"""
User management routes (Admin only)
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import SessionUser, get_password_hash, require_admin
from app.database import get_db
from app.http.requests import UserCreateRequest, UserUpdateRequest
from app.models import User, Venue

router = APIRouter()


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "venueIds": sorted(v.id for v in user.venues),
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def _load_venues(db: Session, venue_ids: List[int]) -> List[Venue]:
    wanted = set(venue_ids)
    venues = db.query(Venue).filter(Venue.id.in_(wanted)).all() if wanted else []
    missing = wanted - {v.id for v in venues}
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Venue(s) not found: {', '.join(str(i) for i in sorted(missing))}"
        )
    return venues


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("")
async def list_users(
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """List all users (Admin only)"""
    users = db.query(User).order_by(User.id).all()
    return {"users": [serialize_user(u) for u in users]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: UserCreateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Create a new user (Admin only)"""
    if db.query(User.id).filter(User.email == request.email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists"
        )

    user = User(
        name=request.name,
        email=request.email,
        password_hash=get_password_hash(request.password),
        role=request.role,
    )
    user.venues = _load_venues(db, request.venueIds)
    db.add(user)
    db.commit()
    db.refresh(user)
    return {"user": serialize_user(user)}


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    request: UserUpdateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Update role, venue memberships, name or password (Admin only)"""
    user = _get_user_or_404(db, user_id)

    if request.role is not None:
        if user.id == current_user.user_id and request.role != user.role:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot change your own role")
        user.role = request.role
    if request.name is not None:
        user.name = request.name or None
    if request.password:
        user.password_hash = get_password_hash(request.password)
    if request.venueIds is not None:
        user.venues = _load_venues(db, request.venueIds)

    db.commit()
    db.refresh(user)
    return {"user": serialize_user(user)}


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_admin)
):
    """Delete user (Admin only)"""
    if user_id == current_user.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account")
    user = _get_user_or_404(db, user_id)
    db.delete(user)
    db.commit()
    return None
