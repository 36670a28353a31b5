import logging
from datetime import timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from bookies.config import settings
from bookies.models.enums import UserRole
from bookies.models.user import User
from bookies.database import get_db
from bookies.services.lifecycle import Actor
from bookies.utils.timezone import now_local

logger = logging.getLogger(__name__)

# HTTP Bearer token - auto_error=False so we can handle errors ourselves
security = HTTPBearer(auto_error=False)

# Password hashing context - bcrypt with automatic salt generation
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"Password verification error: {e}. Hash format may be invalid.")
        return False

def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = now_local() + expires_delta
    else:
        expire = now_local() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt

def issue_token_for(user: User) -> str:
    return create_access_token(data={"sub": str(user.user_id), "role": user.role})

def find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.lower()).first()

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials. Please provide a valid Authorization header with Bearer token.",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        auth_header = request.headers.get("Authorization")
        if auth_header:
            logger.warning(f"Authorization header present but invalid format: {auth_header[:50]}")
        else:
            logger.warning("Authorization header missing")
        raise credentials_exception

    try:
        token = credentials.credentials
        if not token:
            raise credentials_exception

        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        user_id_str: str = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = int(user_id_str)
    except JWTError as e:
        logger.warning(f"JWT validation error: {str(e)}")
        raise credentials_exception
    except (ValueError, TypeError) as e:
        logger.warning(f"Token parsing error: {str(e)}")
        raise credentials_exception

    user = db.query(User).filter(User.user_id == user_id).first()
    if user is None:
        raise credentials_exception
    return user

def get_current_actor(current_user: User = Depends(get_current_user)) -> Actor:
    """The caller as the lifecycle core sees it: an email and an admin flag."""
    return Actor(email=current_user.email, is_admin=current_user.is_admin)

def ensure_default_admin(db: Session) -> Optional[User]:
    """Create the configured default administrator if it doesn't exist yet."""
    if not (settings.default_admin_email and settings.default_admin_password):
        return None

    existing = find_user_by_email(db, settings.default_admin_email)
    if existing:
        return existing

    admin = User(
        name="Admin",
        email=settings.default_admin_email.lower(),
        password_hash=get_password_hash(settings.default_admin_password),
        role=UserRole.ADMIN.value,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info(f"Created default admin user: {admin.email}")
    return admin
