"""
Google OAuth sign-in with server-side sessions.

Features:
- HTTP-only session cookie
- State parameter validation (CSRF protection)
- Users created on first successful login, refreshed on later logins
- Session lookup as a FastAPI dependency for protected endpoints
"""

import secrets
from typing import Any, Dict
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from jose import JWTError, jwt

from core.errors import Unauthorized
from core.logging import get_logger
from core.state import ChatState, get_state
from models.models import User

logger = get_logger(__name__)

# Google OAuth endpoints
AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"

# Scopes
SCOPES = ["openid", "profile", "email"]

# Cookie settings
COOKIE_NAME = "session_token"
LOGIN_COOKIE_MAX_AGE = 600  # 10 minutes to finish the OAuth round trip

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _set_session_cookie(response, chat: ChatState, session_id: str, max_age: int) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=session_id,
        httponly=True,
        secure=chat.settings.COOKIE_SECURE,
        samesite="none" if chat.settings.COOKIE_SECURE else "lax",
        max_age=max_age,
    )


@router.get("/google")
async def login(chat: ChatState = Depends(get_state)):
    """Initiate the Google OAuth 2.0 code flow."""
    csrf_state = secrets.token_urlsafe(32)
    session_id = chat.sessions.create(state=csrf_state)

    params = {
        "client_id": chat.settings.GOOGLE_CLIENT_ID,
        "response_type": "code",
        "redirect_uri": chat.settings.GOOGLE_REDIRECT_URI,
        "scope": " ".join(SCOPES),
        "state": csrf_state,
        "prompt": "select_account",
    }

    response = RedirectResponse(url=f"{AUTHORIZE_URL}?{urlencode(params)}", status_code=302)
    _set_session_cookie(response, chat, session_id, LOGIN_COOKIE_MAX_AGE)
    logger.info("Login initiated, state: %s...", csrf_state[:10])
    return response


@router.get("/google/callback")
async def auth_callback(code: str, state: str, request: Request, chat: ChatState = Depends(get_state)):
    """OAuth 2.0 callback - exchange the code, create or refresh the user."""
    session_id = request.cookies.get(COOKIE_NAME)
    session = chat.sessions.get(session_id)
    if not session:
        logger.error("No valid session in callback")
        raise HTTPException(400, "Session expired. Please try again.")

    # Validate state (CSRF protection)
    if not session.get("state") or session["state"] != state:
        logger.error("State mismatch")
        chat.sessions.delete(session_id)
        raise HTTPException(400, "Invalid state. Possible CSRF attack.")

    token_data = {
        "client_id": chat.settings.GOOGLE_CLIENT_ID,
        "client_secret": chat.settings.GOOGLE_CLIENT_SECRET,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": chat.settings.GOOGLE_REDIRECT_URI,
    }

    try:
        async with httpx.AsyncClient() as client:
            token_response = await client.post(TOKEN_URL, data=token_data)
    except httpx.HTTPError as e:
        logger.error("HTTP error during token exchange: %s", e)
        chat.sessions.delete(session_id)
        raise HTTPException(502, "Authentication failed")

    if token_response.status_code != 200:
        logger.error("Token exchange failed: %s", token_response.text)
        chat.sessions.delete(session_id)
        raise HTTPException(400, "Token exchange failed")

    try:
        claims = jwt.get_unverified_claims(token_response.json().get("id_token") or "")
    except JWTError as e:
        logger.error("Unreadable ID token: %s", e)
        chat.sessions.delete(session_id)
        raise HTTPException(400, "Invalid ID token")

    user = await upsert_user_from_claims(chat, claims)
    chat.sessions.update(session_id, {"user_id": user.id, "state": None})
    logger.info("User authenticated: %s", user.email)

    response = RedirectResponse(url=chat.settings.CLIENT_URL, status_code=302)
    _set_session_cookie(response, chat, session_id, chat.settings.SESSION_MAX_AGE_SECONDS)
    return response


async def upsert_user_from_claims(chat: ChatState, claims: Dict[str, Any]) -> User:
    """Create the user on first login, refresh display fields afterwards."""
    google_id = claims.get("sub")
    if not google_id:
        raise HTTPException(400, "ID token has no subject")

    user = await chat.store.get_user_by_google_id(google_id)
    if user is None:
        user = User(
            google_id=google_id,
            name=claims.get("name") or claims.get("email") or "Anonymous",
            email=claims.get("email"),
            avatar=claims.get("picture"),
        )
        logger.info("✓ Created user %s for %s", user.id, user.email)
    else:
        user.name = claims.get("name") or user.name
        user.avatar = claims.get("picture") or user.avatar
    return await chat.store.save_user(user)


async def get_current_user(request: Request, chat: ChatState = Depends(get_state)) -> User:
    """
    Get the authenticated user from the session cookie.
    Use as dependency for protected endpoints.
    """
    session = chat.sessions.get(request.cookies.get(COOKIE_NAME))
    if not session or not session.get("user_id"):
        raise Unauthorized("Not authenticated")

    user = await chat.store.get_user(session["user_id"])
    if user is None:
        raise Unauthorized("Not authenticated")
    return user


@router.get("/user")
async def get_user_profile(current_user: User = Depends(get_current_user)):
    """Get current user profile."""
    return current_user.to_wire()


@router.get("/logout")
async def logout(request: Request, chat: ChatState = Depends(get_state)):
    """Logout user."""
    session_id = request.cookies.get(COOKIE_NAME)
    if session_id:
        chat.sessions.delete(session_id)
        logger.info("User logged out: %s...", session_id[:10])

    response = JSONResponse({"message": "Logged out successfully"})
    response.delete_cookie(key=COOKIE_NAME)
    return response
