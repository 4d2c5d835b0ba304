"""
Authentication routes and dependencies
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Header, Depends, Cookie
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from database import get_db
from crud.user import UserRepository
from crud.profile import ProfileRepository
from auth_utils import hash_password, verify_password, create_jwt, decode_jwt
from services.trial_service import TrialService
from utils.security_utils import validate_email, validate_password_strength

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

# JWT expiration is 7 days = 604800 seconds
COOKIE_MAX_AGE = 604800


# Request models
class SignupRequest(BaseModel):
    email: str
    password: str
    institution_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


def _session_response(user_id: str) -> JSONResponse:
    """Build the login/signup response carrying the httpOnly auth cookie."""
    token = create_jwt(user_id)
    response = JSONResponse(
        content={
            "ok": True,
            "user_id": user_id
        }
    )
    response.set_cookie(
        key="auth_token",
        value=token,
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=COOKIE_MAX_AGE
    )
    return response


@auth_router.post("/signup")
async def signup(request: SignupRequest, db: AsyncSession = Depends(get_db)):
    """Create a new user account and start its trial"""
    try:
        if not validate_email(request.email):
            raise HTTPException(status_code=400, detail="Invalid email format")

        try:
            validate_password_strength(request.password)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        user_repo = UserRepository(db)

        existing_user = await user_repo.get_user_by_email(request.email.lower())
        if existing_user:
            raise HTTPException(status_code=400, detail="Email already registered")

        user = await user_repo.create_user({
            "email": request.email.lower(),
            "hashed_password": hash_password(request.password),
            "is_active": True,
        })

        # Every new account starts on a trial
        profile_repo = ProfileRepository(db)
        profile = await TrialService(profile_repo).start_trial(user.id, user.email)
        if request.institution_name:
            profile.institution_name = request.institution_name
            await db.flush()

        return _session_response(user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Signup failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Signup failed: {str(e)}")


@auth_router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login and get JWT token"""
    try:
        user_repo = UserRepository(db)

        user = await user_repo.get_user_by_email(request.email.lower())
        if not user:
            raise HTTPException(status_code=401, detail="Invalid email or password")

        if not verify_password(request.password, user.hashed_password):
            raise HTTPException(status_code=401, detail="Invalid email or password")

        if not user.is_active:
            raise HTTPException(status_code=401, detail="User account is inactive")

        return _session_response(user.id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Login failed: {str(e)}")


@auth_router.post("/logout")
async def logout():
    """Logout and clear auth token cookie"""
    response = JSONResponse(
        content={
            "ok": True,
            "message": "Logged out successfully"
        }
    )
    # Clear the auth_token cookie by setting max_age=0
    response.set_cookie(
        key="auth_token",
        value="",
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=0
    )
    return response


# Dependency for protected routes
async def get_current_user(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Dependency function to get current authenticated user.

    Authentication priority:
    1. Check auth_token cookie first (httpOnly cookie set by login/signup)
    2. Fallback to Authorization header (Bearer token) for API consumers
    3. Raise 401 if neither is found
    """
    token = None
    if auth_token:
        token = auth_token
    elif authorization and authorization.startswith("Bearer "):
        token = authorization.replace("Bearer ", "").strip()

    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")

    try:
        payload = decode_jwt(token)
    except ValueError as e:
        logger.error(f"Cannot verify session token: {e}")
        raise HTTPException(status_code=401, detail="Authentication unavailable")
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = await UserRepository(db).get_user_by_id(str(user_id))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is inactive")

    return {
        "user_id": user.id,
        "email": user.email,
        "is_active": user.is_active,
        "created_at": user.created_at,
    }


@auth_router.get("/me")
async def get_current_user_info(current_user: dict = Depends(get_current_user)):
    """Get current user information from JWT token"""
    return {
        "ok": True,
        "user_id": current_user["user_id"],
        "email": current_user["email"],
        "is_active": current_user["is_active"],
    }
