import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from bookies.database import get_db
from bookies.config import settings
from bookies.models.enums import UserRole
from bookies.models.user import User
from bookies.schemas.auth import UserCreate, UserLogin, UserResponse, Token, PasswordChange
from bookies.services.auth import (
    verify_password,
    get_password_hash,
    issue_token_for,
    find_user_by_email,
    get_current_user
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

@router.post("/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserCreate, db: Session = Depends(get_db)):
    """Register a new user."""
    if find_user_by_email(db, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    role = user_data.role or UserRole.USER.value
    if role == UserRole.ADMIN.value and not settings.allow_admin_signup:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator accounts cannot be created through signup"
        )

    db_user = User(
        name=user_data.name,
        email=user_data.email.lower(),
        password_hash=get_password_hash(user_data.password),
        role=role
    )

    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"User registered: {db_user.email} as {db_user.role}")

    return Token(
        access_token=issue_token_for(db_user),
        token_type="bearer",
        user=UserResponse(**db_user.to_dict())
    )

@router.post("/login", response_model=Token)
async def login(user_data: UserLogin, db: Session = Depends(get_db)):
    """Login and get access token."""
    user = find_user_by_email(db, user_data.email)
    if not user or not verify_password(user_data.password, user.password_hash):
        logger.warning(f"Failed login for {user_data.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    return Token(
        access_token=issue_token_for(user),
        token_type="bearer",
        user=UserResponse(**user.to_dict())
    )

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current authenticated user information."""
    return UserResponse(**current_user.to_dict())

@router.put("/change-password")
async def change_password(
    body: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change the caller's password."""
    if not verify_password(body.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect current password"
        )
    if body.new_password == body.current_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="New password must be different from current password"
        )

    current_user.password_hash = get_password_hash(body.new_password)
    db.commit()
    logger.info(f"Password updated for {current_user.email}")
    return {"message": "Password updated successfully"}
