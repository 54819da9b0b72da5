"""
Common schema types used across the API.
"""

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Serialized with camelCase keys; accepts either case on input."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class ApiResponse(BaseModel):
    """Envelope wrapped around every JSON response."""

    success: bool = True
    status_code: int = Field(200, alias="statusCode")
    message: str
    data: Optional[Any] = None

    class Config:
        populate_by_name = True

    @classmethod
    def ok(cls, data: Any = None, message: str = "Success", status_code: int = 200) -> "ApiResponse":
        return cls(success=True, status_code=status_code, message=message, data=data)


class ErrorResponse(BaseModel):
    """Failure envelope; ``errors`` only for request validation failures."""

    success: bool = False
    status_code: int = Field(..., alias="statusCode")
    message: str
    errors: Optional[List[dict]] = None

    class Config:
        populate_by_name = True


class Page(CamelModel, Generic[T]):
    """Paginated list."""

    items: List[T]
    total: int
    page: int = 1
    page_size: int = 20
    has_more: bool = False

    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int = 1,
        page_size: int = 20,
    ) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            has_more=(page * page_size) < total,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"
