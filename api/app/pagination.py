from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Query

from . import schemas
from .settings import DEFAULT_PER_PAGE, MAX_PER_PAGE


@dataclass
class PageResult:
    """A page of ORM rows plus the numbers needed to describe it."""

    items: list[Any]
    page: int
    per_page: int
    total: int

    @property
    def meta(self) -> schemas.PageMeta:
        last_page = max(1, math.ceil(self.total / self.per_page)) if self.per_page else 1
        first = (self.page - 1) * self.per_page + 1 if self.items else None
        last = first + len(self.items) - 1 if first is not None else None
        return schemas.PageMeta(
            current_page=self.page,
            per_page=self.per_page,
            total=self.total,
            last_page=last_page,
            from_=first,
            to=last,
        )


def clamp_per_page(per_page: int | None, default: int = DEFAULT_PER_PAGE) -> int:
    if per_page is None or per_page < 1:
        return default
    return min(per_page, MAX_PER_PAGE)


def paginate(query: Query, page: int = 1, per_page: int | None = None, default: int = DEFAULT_PER_PAGE) -> PageResult:
    """Offset-paginate a query, returning the requested page and the total row count."""
    page = max(1, page or 1)
    per_page = clamp_per_page(per_page, default)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return PageResult(items=items, page=page, per_page=per_page, total=total)
