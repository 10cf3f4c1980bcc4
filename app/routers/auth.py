"""
Authentication Router

- Registration (name/email/password -> user + access token)
- Login (email/password -> access token, refresh token cookie)
- Token refresh (refresh token -> new access token)
- Logout (clear the refresh token cookie)
- Current user
- Account deletion (password re-confirmation, cascades to favorites)

Security:
- Passwords are hashed with bcrypt and never logged
- Refresh tokens travel in an httpOnly cookie (or the request body)
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.config import get_settings
from app.dependencies import ActiveUser, DbSession
from app.models.user import User
from app.schemas import (
    AccountDeleteRequest,
    AuthData,
    Envelope,
    LoginRequest,
    RefreshTokenRequest,
    TokenData,
    UserCreate,
    UserData,
    UserResponse,
)
from app.services.rate_limiter import AUTH_LIMIT, limiter
from app.services.security import (
    TOKEN_TYPE_REFRESH,
    access_token_lifetime,
    create_access_token,
    create_refresh_token,
    hash_password,
    refresh_token_lifetime,
    verify_password,
    verify_token_type,
)

logger = logging.getLogger(__name__)
settings = get_settings()

REFRESH_COOKIE = "refresh_token"

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        401: {"description": "Unauthorized"},
        409: {"description": "Email already registered"},
    },
)


def _auth_data(user: User) -> AuthData:
    return AuthData(
        token=create_access_token({"sub": str(user.id)}),
        expires_in=int(access_token_lifetime().total_seconds()),
        user=UserResponse.model_validate(user),
    )


def _set_refresh_cookie(response: Response, user: User) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=create_refresh_token({"sub": str(user.id)}),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=int(refresh_token_lifetime().total_seconds()),
    )


# -------------------------------------------------------------------------
# Registration
# -------------------------------------------------------------------------
@router.post(
    "/register",
    response_model=Envelope[AuthData],
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    description="""
    Create an account and receive an access token.

    **Password Requirements:**
    - Minimum 8 characters
    - Must match `password_confirmation`
    """,
)
@limiter.limit("5/minute")
def register(
    request: Request,
    user_data: UserCreate,
    db: DbSession,
) -> Envelope[AuthData]:
    stmt = select(User).where(User.email == user_data.email)
    if db.execute(stmt).scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        name=user_data.name,
        email=user_data.email,
        hashed_password=hash_password(user_data.password),
        is_active=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )
    db.refresh(user)

    logger.info(f"New user registered: {user.email}")
    return Envelope(message="User registered successfully", data=_auth_data(user))


# -------------------------------------------------------------------------
# Login
# -------------------------------------------------------------------------
@router.post(
    "/login",
    response_model=Envelope[AuthData],
    summary="Login with email and password",
    description="""
    Authenticate and receive a JWT access token.

    A refresh token is set as an httpOnly cookie; exchange it at
    `/auth/refresh` when the access token expires.
    """,
)
@limiter.limit(AUTH_LIMIT)
def login(
    request: Request,
    response: Response,
    credentials: LoginRequest,
    db: DbSession,
) -> Envelope[AuthData]:
    stmt = select(User).where(User.email == credentials.email)
    user = db.execute(stmt).scalar_one_or_none()

    if user is None or not verify_password(credentials.password, user.hashed_password):
        logger.warning(f"Login failed for {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        logger.warning(f"Login failed: inactive account {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    user.last_login_at = datetime.now(UTC)
    db.commit()
    db.refresh(user)

    _set_refresh_cookie(response, user)
    logger.info(f"User logged in: {user.email}")
    return Envelope(message="Login successful", data=_auth_data(user))


# -------------------------------------------------------------------------
# Token Refresh
# -------------------------------------------------------------------------
@router.post(
    "/refresh",
    response_model=Envelope[TokenData],
    summary="Refresh access token",
    description="Exchange the refresh token (cookie or body) for a new access token.",
)
def refresh_token(
    request: Request,
    db: DbSession,
    body: RefreshTokenRequest | None = None,
) -> Envelope[TokenData]:
    token = body.refresh_token if body and body.refresh_token else request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token_type(token, TOKEN_TYPE_REFRESH)
    user_id = payload.get("sub") if payload else None
    user = db.get(User, int(user_id)) if user_id and str(user_id).isdigit() else None

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    logger.info(f"Token refreshed for user: {user.email}")
    return Envelope(
        data=TokenData(
            token=create_access_token({"sub": str(user.id)}),
            expires_in=int(access_token_lifetime().total_seconds()),
        )
    )


# -------------------------------------------------------------------------
# Logout
# -------------------------------------------------------------------------
@router.post(
    "/logout",
    response_model=Envelope[None],
    summary="Logout user",
    description="""
    Clear the refresh token cookie. The access token stays valid until it
    expires.
    """,
)
def logout(
    response: Response,
    current_user: ActiveUser,
) -> Envelope[None]:
    response.delete_cookie(
        key=REFRESH_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    logger.info(f"User logged out: {current_user.email}")
    return Envelope(message="Logged out successfully")


# -------------------------------------------------------------------------
# Current User
# -------------------------------------------------------------------------
@router.get(
    "/me",
    response_model=Envelope[UserData],
    summary="Get current user",
)
def get_me(current_user: ActiveUser) -> Envelope[UserData]:
    return Envelope(data=UserData(user=UserResponse.model_validate(current_user)))


# -------------------------------------------------------------------------
# Account Deletion
# -------------------------------------------------------------------------
@router.delete(
    "/account",
    response_model=Envelope[None],
    summary="Delete account",
    description="Permanently delete the account and its favorites. Requires the current password.",
    responses={403: {"description": "Incorrect password"}},
)
def delete_account(
    body: AccountDeleteRequest,
    response: Response,
    current_user: ActiveUser,
    db: DbSession,
) -> Envelope[None]:
    if not verify_password(body.password, current_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Incorrect password",
        )

    email = current_user.email
    db.delete(current_user)
    db.commit()

    response.delete_cookie(key=REFRESH_COOKIE, httponly=True, samesite="lax")
    logger.info(f"Account deleted: {email}")
    return Envelope(message="Account deleted successfully")
