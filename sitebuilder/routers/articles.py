# sitebuilder/routers/articles.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from sitebuilder.core.auth import require_user
from sitebuilder.database import get_session
from sitebuilder.models.user import User
from sitebuilder.routers.pages import service
from sitebuilder.schemas.common import PaginationParams, pagination_params
from sitebuilder.schemas.page import ArticleCreate, ArticlePage, ArticleRead

router = APIRouter(prefix="/articles", tags=["Articles"])


@router.get("/site/{site_id}", response_model=ArticlePage)
def list_articles(
    site_id: int,
    session: Session = Depends(get_session),
    params: PaginationParams = Depends(pagination_params),
):
    return service.list_articles(session, site_id, params)


@router.post("", response_model=ArticleRead, status_code=status.HTTP_201_CREATED)
def create_article(
    payload: ArticleCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.create_article(session, current_user, payload)


@router.delete("/{article_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_article(
    article_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Soft delete; the article disappears from every page's usages.
    """
    service.delete_article(session, current_user, article_id)
