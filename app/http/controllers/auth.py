"""
Authentication routes
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models import User
from app.auth import SessionUser, verify_password, create_access_token, get_current_user
from app.http.requests import LoginRequest, LoginResponse, UserResponse

router = APIRouter()

@router.post("/login", response_model=LoginResponse)
async def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password"""
    if not credentials.email or not credentials.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and password are required"
        )

    user = db.query(User).filter(User.email == credentials.email).first()
    if not user or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    access_token = create_access_token(data={"sub": user.id, "role": user.role.value})

    return LoginResponse(
        user={
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role.value,
            "venueIds": sorted(v.id for v in user.venues),
        },
        token=access_token
    )

@router.get("/me", response_model=UserResponse)
async def get_me(current_user: SessionUser = Depends(get_current_user)):
    """Get current user"""
    return UserResponse(
        id=current_user.user_id,
        email=current_user.email,
        name=current_user.name,
        role=current_user.role,
        venueIds=current_user.venue_ids,
    )
