# glowglitch/core/pagination.py
from __future__ import annotations

import math
from dataclasses import dataclass

from fastapi import Query

from glowglitch.schemas.common import PaginationOut

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def describe(self, total: int) -> PaginationOut:
        total_pages = math.ceil(total / self.limit) if total else 0
        return PaginationOut(
            page=self.page,
            limit=self.limit,
            total=total,
            total_pages=total_pages,
            has_next_page=self.page < total_pages,
            has_prev_page=self.page > 1,
        )


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, limit=limit)
