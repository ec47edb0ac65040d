"""
core/pagination.py -- Page request clamping and page metadata.

Shared by tasks/ and admin/ list operations. Pure arithmetic, no I/O.

Layer rule: core/ is the kernel. No imports from api/, auth/, tasks/, admin/.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass(frozen=True)
class PageRequest:
    """1-based page index and page size, clamped on construction.

    page < 1 becomes 1; limit is clamped to [1, MAX_LIMIT].
    """

    page: int = 1
    limit: int = DEFAULT_LIMIT

    def __post_init__(self) -> None:
        object.__setattr__(self, "page", max(1, int(self.page)))
        object.__setattr__(self, "limit", min(MAX_LIMIT, max(1, int(self.limit))))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page(Generic[T]):
    """One page of results plus the arithmetic the response envelope needs."""

    items: list[T]
    total: int
    request: PageRequest = field(default_factory=PageRequest)

    @property
    def page(self) -> int:
        return self.request.page

    @property
    def limit(self) -> int:
        return self.request.limit

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1
