"""Response envelope models.

Successful responses wrap their payload in {"data": ...}; collections add a
"meta" block with pagination. Failures use {"error": {...}} and are built by
the exception handlers in app.main.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, computed_field

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination metadata for list responses.

    Attributes:
        total: Number of matching items across all pages.
        page: Current page number (1-indexed).
        per_page: Page size.
    """

    total: int
    page: int
    per_page: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        """Pages needed to show every item; 0 when there are none."""
        if self.total == 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page


class DataResponse(BaseModel, Generic[T]):
    """Envelope for a single resource."""

    data: T


class ListResponse(BaseModel, Generic[T]):
    """Envelope for a page of a collection.

    Usage:
        users, total = await svc.list_users(page=page, per_page=per_page)
        return ListResponse(
            data=[AdminUserResponse.from_user(u) for u in users],
            meta=PaginationMeta(total=total, page=page, per_page=per_page),
        )
    """

    data: list[T]
    meta: PaginationMeta


class ErrorDetail(BaseModel):
    """Body of an error response.

    Attributes:
        code: Stable machine-readable code (e.g., "INVALID_CODE").
        message: Human-readable message, safe to show to end users.
        details: Optional structured context (field names, retry hints).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Error envelope: {"error": {"code", "message", "details"}}."""

    error: ErrorDetail
