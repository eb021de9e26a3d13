"""Paged query results and the `Pagination` response header."""

from __future__ import annotations

import json
import math
from typing import Generic, List, TypeVar

from fastapi import Response
from sqlalchemy import func
from sqlmodel import Session, select

MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 10
# keeps OFFSET inside a 64-bit integer for any page size
MAX_PAGE_NUMBER = 1_000_000

T = TypeVar("T")


def clamp_page_size(page_size: int) -> int:
    """Page sizes above `MAX_PAGE_SIZE` are silently capped."""
    if page_size < 1:
        return DEFAULT_PAGE_SIZE
    return min(page_size, MAX_PAGE_SIZE)


class PagedList(Generic[T]):
    """One page of items plus the totals needed to page through the rest."""

    def __init__(self, items: List[T], count: int, page_number: int, page_size: int):
        self.items = list(items)
        self.current_page = page_number
        self.page_size = page_size
        self.total_count = count
        self.total_pages = math.ceil(count / page_size) if page_size else 0

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def map(self, fn) -> "PagedList":
        """Return a new page with `fn` applied to every item and the same totals."""
        return PagedList([fn(i) for i in self.items], self.total_count, self.current_page, self.page_size)

    @classmethod
    def create(cls, session: Session, stmt, page_number: int, page_size: int) -> "PagedList":
        """Count the rows `stmt` selects, then fetch the requested page."""
        page_number = min(max(1, page_number), MAX_PAGE_NUMBER)
        page_size = clamp_page_size(page_size)
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        count = session.exec(count_stmt).one()
        items = session.exec(stmt.offset((page_number - 1) * page_size).limit(page_size)).all()
        return cls(items, count, page_number, page_size)

    def header(self) -> dict:
        return {
            "currentPage": self.current_page,
            "itemsPerPage": self.page_size,
            "totalItems": self.total_count,
            "totalPages": self.total_pages,
        }


def add_pagination_header(response: Response, page: PagedList) -> None:
    """Attach the paging metadata of `page` as a JSON `Pagination` header."""
    response.headers["Pagination"] = json.dumps(page.header())
    response.headers["Access-Control-Expose-Headers"] = "Pagination"
