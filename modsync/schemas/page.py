"""Paged query schemas."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

PAGE_LIMIT_MAX = 100


@dataclass(frozen=True)
class Pagination:
    """Limit/offset window for a paged query."""

    limit: int = PAGE_LIMIT_MAX
    offset: int = 0

    def as_params(self) -> dict[str, int]:
        return {"_limit": self.limit, "_offset": self.offset}

    def next(self) -> Pagination:
        return Pagination(limit=self.limit, offset=self.offset + self.limit)


@dataclass(frozen=True)
class TimeRange:
    """Half-open ``[start, end)`` range of server timestamps."""

    start: int
    end: int


class Page(BaseModel, Generic[T]):
    """One page of a paged query result."""

    data: list[T] = Field(default_factory=list)
    result_count: int = Field(default=0, ge=0)
    result_offset: int = Field(default=0, ge=0)
    result_limit: int = Field(default=PAGE_LIMIT_MAX, ge=0)
    result_total: int = Field(default=0, ge=0)
