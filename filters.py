from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Literal, Optional, Sequence, Union

from sqlalchemy import Select, func

from models import Expense


def owned_by(model, user_id: int):
    """Ownership predicate: every query in the app goes through this."""
    return model.user_id == user_id


def name_search(model, text: Optional[str]):
    if not text or not text.strip():
        return None
    pattern = f"%{text.strip().lower()}%"
    return func.lower(model.name).like(pattern)


@dataclass(frozen=True)
class BySearch:
    text: str


@dataclass(frozen=True)
class ByCategory:
    category_id: int


@dataclass(frozen=True)
class ByAmountRange:
    min_cents: Optional[int] = None
    max_cents: Optional[int] = None


@dataclass(frozen=True)
class BySort:
    column: Literal["date", "amount"] = "date"
    direction: Literal["asc", "desc"] = "desc"


ExpenseFilter = Union[BySearch, ByCategory, ByAmountRange, BySort]

_SORT_COLUMNS = {
    "date": Expense.date,
    "amount": Expense.amount_cents,
}


def _apply_one(stmt: Select, item: ExpenseFilter) -> Select:
    if isinstance(item, BySearch):
        text = item.text.strip().lower()
        if not text:
            return stmt
        return stmt.where(func.lower(Expense.description).like(f"%{text}%"))
    if isinstance(item, ByCategory):
        return stmt.where(Expense.category_id == item.category_id)
    if isinstance(item, ByAmountRange):
        if item.min_cents is not None:
            stmt = stmt.where(Expense.amount_cents >= item.min_cents)
        if item.max_cents is not None:
            stmt = stmt.where(Expense.amount_cents <= item.max_cents)
        return stmt
    if isinstance(item, BySort):
        # Sorting is resolved once in apply_expense_filters.
        return stmt
    raise TypeError(f"Unsupported expense filter: {item!r}")


def resolve_sort(filters: Sequence[ExpenseFilter]) -> BySort:
    sorts = [f for f in filters if isinstance(f, BySort)]
    if not sorts:
        return BySort()
    sort = sorts[-1]
    if sort.column not in _SORT_COLUMNS:
        raise ValueError(f"Unsupported sort column: {sort.column}")
    if sort.direction not in ("asc", "desc"):
        raise ValueError(f"Unsupported sort direction: {sort.direction}")
    return sort


def apply_expense_filters(stmt: Select, filters: Sequence[ExpenseFilter]) -> Select:
    sort = resolve_sort(filters)
    stmt = reduce(_apply_one, filters, stmt)
    column = _SORT_COLUMNS[sort.column]
    primary = column.asc() if sort.direction == "asc" else column.desc()
    return stmt.order_by(primary, Expense.id.asc())


def expense_filters_from_params(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    min_cents: Optional[int] = None,
    max_cents: Optional[int] = None,
    sort: Optional[str] = None,
    order: Optional[str] = None,
) -> list[ExpenseFilter]:
    filters: list[ExpenseFilter] = []
    if search:
        filters.append(BySearch(search))
    if category_id is not None:
        filters.append(ByCategory(category_id))
    if min_cents is not None or max_cents is not None:
        filters.append(ByAmountRange(min_cents, max_cents))
    if sort and order:
        filters.append(BySort(sort, order.lower()))  # type: ignore[arg-type]
    return filters
