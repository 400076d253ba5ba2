"""Authentication router: register, login, logout and current user."""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.deps import COOKIE_NAME, get_current_user, get_db
from helpdesk.core.rate_limit import AUTH_LIMIT, limiter
from helpdesk.schemas.auth import AuthResponse, LoginRequest, RegisterRequest, UserRead
from helpdesk.services import auth_service

router = APIRouter()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
@limiter.limit(AUTH_LIMIT)
def register(
    request: Request,
    response: Response,
    data: RegisterRequest,
    db: Session = Depends(get_db),
):
    """
    Create a requester account and start a session.

    The token is returned in the body (for Bearer use) and set as an
    HttpOnly cookie.
    """
    result = auth_service.register(db, data)
    _set_session_cookie(response, result.token)
    return result


@router.post("/login", response_model=AuthResponse)
@limiter.limit(AUTH_LIMIT)
def login(
    request: Request,
    response: Response,
    data: LoginRequest,
    db: Session = Depends(get_db),
):
    """Log in with username or email."""
    result = auth_service.authenticate(db, data)
    _set_session_cookie(response, result.token)
    return result


@router.post("/logout")
def logout(response: Response):
    """Clear the session cookie. Bearer tokens simply expire."""
    response.delete_cookie(key=COOKIE_NAME, path="/")
    return {"status": "logged_out"}


@router.get("/me", response_model=UserRead)
def get_me(user=Depends(get_current_user)):
    """Get current user info."""
    return user
