# sitebuilder/services/access.py
from sqlmodel import Session

from sitebuilder.core.errors import Forbidden, NotFound
from sitebuilder.models.enums import UserRole
from sitebuilder.models.site import Site
from sitebuilder.models.user import User
from sitebuilder.repositories.user_repo import UserRepository


def ensure_site_access(
    user_repo: UserRepository,
    session: Session,
    user: User,
    site_id: int,
) -> Site:
    """
    A tenant may manage a site's resources iff they own the site;
    admins may manage every site.
    """
    site = user_repo.get_site(session, site_id)
    if site is None:
        raise NotFound("Site not found")
    if site.user_id != user.id and user.role != UserRole.ADMIN:
        raise Forbidden("You do not own this site")
    return site
