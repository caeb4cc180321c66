# sitebuilder/schemas/common.py
from fastapi import Query
from pydantic import BaseModel, Field

from sitebuilder.models.enums import SortDirection


class PaginationParams(BaseModel):
    """
    Query parameters shared by every list endpoint.

      - page >= 1
      - page_size in [1, 100]
    """

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
    search: str | None = None
    sort: SortDirection | None = None
    sort_by: str | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def pagination_params(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: str | None = None,
    sort: SortDirection | None = None,
    sort_by: str | None = None,
) -> PaginationParams:
    """FastAPI dependency: pagination query string -> PaginationParams."""
    return PaginationParams(
        page=page,
        page_size=page_size,
        search=search,
        sort=sort,
        sort_by=sort_by,
    )
