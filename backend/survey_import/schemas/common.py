"""Response envelope shared by every route."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """``data`` carries the payload; ``warnings`` lists non-blocking notices such as manifest findings."""

    data: T
    warnings: list[str] = Field(default_factory=list)
