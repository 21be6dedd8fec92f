# app/core/auth.py
import uuid
from typing import Any

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session, select

from app.core.config import get_settings
from app.database import get_session
from app.models.user import User

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately,
#   require_auth turns it into a 401 with our own message.
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify an access token (JWT) issued by the identity provider.

    Verification:
      - signature (JWT_SECRET / JWT_ALG)
      - expiration time (exp)
      - audience is NOT verified (provider 'aud' may vary)

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def _default_name_from_email(email: str) -> str:
    """
    Derive a default display name from email if the user has not
    completed their profile yet.
    """
    if "@" in email:
        return email.split("@", 1)[0][:50]
    return email[:50]


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current user from a bearer JWT.

    Flow:
      1. If no Authorization header => anonymous => return None.
      2. Decode JWT => extract 'sub' (user id) and 'email'.
      3. Convert 'sub' to UUID to match User.id type.
      4. Find the user row.
      5. If missing, auto-provision a minimal customer profile.

    The role always comes from the users row, never from token claims.
    """
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials)
    sub = payload.get("sub")
    email = payload.get("email")

    if not sub or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub/email",
        )

    try:
        sub_uuid = uuid.UUID(sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub in token",
        )

    user = session.exec(select(User).where(User.id == sub_uuid)).first()

    # Auto-provision profile if not found yet.
    # Default role = "customer" (partners/couriers are promoted by onboarding).
    if user is None:
        user = User(
            id=sub_uuid,
            email=email,
            name=_default_name_from_email(email),
            role="customer",
        )
        session.add(user)
        session.commit()
        session.refresh(user)

    return user


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if user is None.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def _require_role(role: str, label: str):
    def dependency(user: User = Depends(require_auth)) -> User:
        if user.role != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{label} access required",
            )
        return user

    dependency.__name__ = f"require_{role}"
    return dependency


# Cart, checkout and customer order endpoints
require_customer = _require_role("customer", "Customer")
# Partner order queue
require_partner = _require_role("partner", "Partner")
# Courier pool and deliveries
require_courier = _require_role("courier", "Courier")
# Dashboard and zone management
require_admin = _require_role("admin", "Admin")


def get_session_id(x_session_id: str | None = Header(default=None, max_length=64)) -> str | None:
    """
    Optional client session scope for the cart (X-Session-ID header).
    """
    if x_session_id is None:
        return None
    x_session_id = x_session_id.strip()
    return x_session_id or None
