# sitebuilder/models/base.py
from datetime import datetime

from sqlmodel import SQLModel, Field

from sitebuilder.core.clock import utcnow


class TimestampMixin(SQLModel):
    """
    created_at / updated_at for every mutable table.

    updated_at is refreshed by the repositories on update; SQLModel does
    not do it for us.
    """

    created_at: datetime = Field(
        default_factory=utcnow,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        index=True,
        description="Last update timestamp (UTC)",
    )


class SoftDeleteMixin(SQLModel):
    """
    Soft-deleted rows stay in the table; list/get queries filter them out.
    """

    is_deleted: bool = Field(default=False, index=True)
    deleted_at: datetime | None = Field(default=None)
