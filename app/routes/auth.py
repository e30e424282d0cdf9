"""
Admin sign-in. Only active administrators receive tokens; every other
route in the API requires one.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from ..database import get_db
from ..limiter import limiter
from ..models.user import User
from ..schemas.auth import AdminLogin, AdminProfile, RefreshRequest, TokenPair
from ..auth import (
    verify_password,
    create_tokens,
    get_admin_user,
    refresh_access_token,
)
from ..config import get_settings
from ..logging_config import api_logger

settings = get_settings()

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _sign_in(db: Session, email: str, password: str) -> TokenPair:
    user = db.query(User).filter(User.email == email).first()
    if not user or not user.is_active or not verify_password(password, user.hashed_password):
        api_logger.warning("Failed login attempt", email=email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_admin:
        api_logger.warning("Login refused for non-admin account", user_id=user.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")

    access_token, refresh_token = create_tokens(user.id)
    api_logger.info("Admin signed in", user_id=user.id)
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


@router.post("/login", response_model=TokenPair)
@limiter.limit(settings.login_rate_limit)
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """OAuth2 password form; ``username`` carries the email."""
    return _sign_in(db, form_data.username, form_data.password)


@router.post("/login/json", response_model=TokenPair)
@limiter.limit(settings.login_rate_limit)
def login_json(request: Request, credentials: AdminLogin, db: Session = Depends(get_db)):
    return _sign_in(db, credentials.email, credentials.password)


@router.post("/refresh", response_model=TokenPair)
@limiter.limit(settings.login_rate_limit)
def refresh_tokens(request: Request, body: RefreshRequest, db: Session = Depends(get_db)):
    tokens = refresh_access_token(body.refresh_token, db)
    if not tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    return TokenPair(access_token=tokens[0], refresh_token=tokens[1])


@router.get("/me", response_model=AdminProfile)
def get_me(admin: User = Depends(get_admin_user)):
    return admin
