# sitebuilder/routers/users.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from sitebuilder.core.auth import require_user
from sitebuilder.core.container import user_repo
from sitebuilder.database import get_session
from sitebuilder.models.user import User
from sitebuilder.schemas.user import PlanRead, SiteRead, UserRead

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(require_user)):
    """
    Return the authenticated tenant's profile, credit balances and plan.

    Auth:
      - Requires a typ="user" token. The profile row is auto-provisioned
        on first request.
    """
    return current_user


@router.get("/me/sites", response_model=list[SiteRead])
def list_my_sites(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return user_repo.list_sites_for_user(session, current_user.id)


@router.get("/plans", response_model=list[PlanRead])
def list_plans(session: Session = Depends(get_session)):
    """Plans a tenant can upgrade to (public)."""
    return user_repo.list_plans(session)
