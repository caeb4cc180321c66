# sitebuilder/repositories/base.py
from typing import Any

from sqlalchemy import func
from sqlmodel import Session, select

from sitebuilder.models.enums import SortDirection
from sitebuilder.schemas.common import PaginationParams


def directed(column: Any, params: PaginationParams, default: SortDirection = SortDirection.DESC) -> Any:
    """ORDER BY clause for `column` in the direction asked for by `params.sort`."""
    if (params.sort or default) == SortDirection.ASC:
        return column.asc()
    return column.desc()


def paginate(session: Session, stmt: Any, params: PaginationParams) -> tuple[list[Any], int]:
    """
    Run `stmt` for one page and count the full result set.

    The count wraps the filtered statement as a subquery so joins and
    WHERE clauses are honoured; ORDER BY is dropped for the count.
    """
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = session.exec(count_stmt).one()
    items = session.exec(stmt.offset(params.offset).limit(params.page_size)).all()
    return list(items), total
