# sitebuilder/core/auth.py
from datetime import timedelta
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session, select

from sitebuilder.core.clock import utcnow
from sitebuilder.core.config import get_settings
from sitebuilder.core.errors import Forbidden, Unauthorized
from sitebuilder.database import get_session
from sitebuilder.models.enums import UserRole, UserType
from sitebuilder.models.site import Customer
from sitebuilder.models.user import User

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so public endpoints can still resolve an optional identity.
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    sub: int,
    typ: UserType,
    site_id: int | None = None,
    email: str | None = None,
    ttl_minutes: int | None = None,
) -> str:
    """
    Issue a signed token.

    Tokens are normally minted by the identity service; this helper
    shares its claim layout so tests and tooling can produce valid ones.
    """
    ttl = ttl_minutes if ttl_minutes is not None else settings.JWT_TTL_MINUTES
    claims: dict[str, Any] = {
        "sub": str(sub),
        "typ": typ.value,
        "exp": utcnow() + timedelta(minutes=ttl),
    }
    if site_id is not None:
        claims["site_id"] = site_id
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify an access token (JWT).

    Verification:
      - signature (JWT_SECRET / JWT_ALG)
      - expiration time (exp)
      - audience is NOT verified

    Raises:
        Unauthorized: if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise Unauthorized("Invalid or expired token")


def _claims(credentials: HTTPAuthorizationCredentials | None) -> dict[str, Any] | None:
    if credentials is None:
        return None
    payload = decode_access_token(credentials.credentials)
    sub = payload.get("sub")
    try:
        payload["sub"] = int(sub)
    except (TypeError, ValueError):
        raise Unauthorized("Invalid sub in token")
    return payload


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current tenant/admin from a typ="user" token.

    Flow:
      1. No Authorization header => None.
      2. Token of another type (customer) => None.
      3. Look up the user; if missing and the token carries an email,
         provision a minimal profile with role "user".
    """
    payload = _claims(credentials)
    if payload is None or payload.get("typ") != UserType.USER.value:
        return None

    user = session.get(User, payload["sub"])
    if user is None:
        email = payload.get("email")
        if not email:
            raise Unauthorized("Unknown user")
        user = User(id=payload["sub"], email=email, name=email.split("@", 1)[0])
        session.add(user)
        session.commit()
        session.refresh(user)
    return user


def require_user(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce an authenticated tenant or admin (401 otherwise).
    """
    if user is None:
        raise Unauthorized()
    return user


def require_admin(user: User = Depends(require_user)) -> User:
    """
    Enforce admin role (403 otherwise).
    """
    if user.role != UserRole.ADMIN:
        raise Forbidden("Admin access required")
    return user


def require_customer(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Customer:
    """
    Enforce an end-shopper token (typ="customer").

    The token's site_id must match the customer's site; a customer
    identity is never valid on another tenant's storefront.
    """
    payload = _claims(credentials)
    if payload is None:
        raise Unauthorized()
    if payload.get("typ") != UserType.CUSTOMER.value:
        raise Forbidden("Customer access required")

    customer = session.exec(
        select(Customer).where(Customer.id == payload["sub"])
    ).first()
    if customer is None or customer.site_id != payload.get("site_id"):
        raise Unauthorized("Unknown customer")
    return customer
