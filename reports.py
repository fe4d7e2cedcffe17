"""Read-only aggregation reports over a user's expenses.

Each report is one grouped query scoped to the user, followed by a shaping
step that turns driver rows into flat response records. The join style is
chosen per report and is part of its contract:

* ``spend_by_category``  inner join; categories without expenses are absent.
* ``budget_vs_spend``    outer join; every category of the user is present.
* ``wallet_balances``    inner join; wallets without expenses are absent.
* ``monthly_summary``    no join; only months that contain expenses.

Shaping rules are shared by all four: a missing aggregate becomes ``0.00``,
a missing foreign attribute (no budget) becomes ``None``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Iterable, TypeVar

from sqlalchemy import Select, and_, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from filters import owned_by
from models import Budget, Category, Expense, Wallet
from money import ZERO, RawAmount, cents_to_amount, coerce_cents
from schemas import BudgetUsageRow, CategorySpendRow, MonthlySpendRow, WalletSpendRow
from services import StoreFailure

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT")


def money_or_zero(raw: RawAmount):
    cents = coerce_cents(raw)
    return ZERO if cents is None else cents_to_amount(cents)


def money_or_none(raw: RawAmount):
    cents = coerce_cents(raw)
    return None if cents is None else cents_to_amount(cents)


def month_start(raw) -> date:
    if isinstance(raw, datetime):
        return raw.date().replace(day=1)
    if isinstance(raw, date):
        return raw.replace(day=1)
    if isinstance(raw, str):
        return date.fromisoformat(raw.strip()[:10]).replace(day=1)
    raise ValueError(f"Invalid month value: {raw!r}")


def shape_category_spend(rows: Iterable) -> list[CategorySpendRow]:
    return [
        CategorySpendRow(
            category_id=row.category_id,
            category_name=row.category_name,
            total_spent=money_or_zero(row.total),
        )
        for row in rows
    ]


def shape_budget_usage(rows: Iterable) -> list[BudgetUsageRow]:
    return [
        BudgetUsageRow(
            category_id=row.category_id,
            category_name=row.category_name,
            budget_id=row.budget_id,
            budget_name=row.budget_name,
            limit=money_or_none(row.limit_cents),
            total_spent=money_or_zero(row.total),
        )
        for row in rows
    ]


def shape_wallet_spend(rows: Iterable) -> list[WalletSpendRow]:
    return [
        WalletSpendRow(
            wallet_id=row.wallet_id,
            wallet_name=row.wallet_name,
            balance=money_or_zero(row.balance_cents),
            total_spent=money_or_zero(row.total),
        )
        for row in rows
    ]


def shape_monthly_spend(rows: Iterable) -> list[MonthlySpendRow]:
    return [
        MonthlySpendRow(month=month_start(row.month), total_spent=money_or_zero(row.total))
        for row in rows
    ]


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _run(
        self, name: str, stmt: Select, shape: Callable[[Iterable], list[RowT]]
    ) -> list[RowT]:
        try:
            rows = self.session.execute(stmt).all()
            shaped = shape(rows)
        except (SQLAlchemyError, ValueError) as exc:
            logger.exception(f"report_failed: report={name} user_id={self.user_id}")
            raise StoreFailure("Server error") from exc
        logger.info(f"report_run: report={name} user_id={self.user_id} rows={len(shaped)}")
        return shaped

    def _month_bucket(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return func.strftime("%Y-%m-01", Expense.date)
        if dialect in ("mysql", "mariadb"):
            return func.date_format(Expense.date, "%Y-%m-01")
        return func.date_trunc("month", Expense.date)

    def spend_by_category(self) -> list[CategorySpendRow]:
        total = func.sum(Expense.amount_cents).label("total")
        stmt = (
            select(
                Category.id.label("category_id"),
                Category.name.label("category_name"),
                total,
            )
            .select_from(Expense)
            .join(Category, Category.id == Expense.category_id)
            .where(owned_by(Expense, self.user_id), owned_by(Category, self.user_id))
            .group_by(Category.id, Category.name)
            .order_by(desc("total"), Category.id.asc())
        )
        return self._run("spend_by_category", stmt, shape_category_spend)

    def budget_vs_spend(self) -> list[BudgetUsageRow]:
        stmt = (
            select(
                Category.id.label("category_id"),
                Category.name.label("category_name"),
                Budget.id.label("budget_id"),
                Budget.name.label("budget_name"),
                Budget.limit_cents.label("limit_cents"),
                func.sum(Expense.amount_cents).label("total"),
            )
            .select_from(Category)
            .outerjoin(
                Budget,
                and_(
                    Budget.category_id == Category.id,
                    owned_by(Budget, self.user_id),
                ),
            )
            .outerjoin(
                Expense,
                and_(
                    Expense.category_id == Category.id,
                    owned_by(Expense, self.user_id),
                ),
            )
            .where(owned_by(Category, self.user_id))
            .group_by(
                Category.id,
                Category.name,
                Budget.id,
                Budget.name,
                Budget.limit_cents,
            )
            .order_by(Category.name.asc(), Category.id.asc(), Budget.id.asc())
        )
        return self._run("budget_vs_spend", stmt, shape_budget_usage)

    def wallet_balances(self) -> list[WalletSpendRow]:
        total = func.sum(Expense.amount_cents).label("total")
        stmt = (
            select(
                Wallet.id.label("wallet_id"),
                Wallet.name.label("wallet_name"),
                Wallet.balance_cents.label("balance_cents"),
                total,
            )
            .select_from(Expense)
            .join(Wallet, Wallet.id == Expense.wallet_id)
            .where(owned_by(Expense, self.user_id), owned_by(Wallet, self.user_id))
            .group_by(Wallet.id, Wallet.name, Wallet.balance_cents)
            .order_by(desc("total"), Wallet.id.asc())
        )
        return self._run("wallet_balances", stmt, shape_wallet_spend)

    def monthly_summary(self) -> list[MonthlySpendRow]:
        stmt = (
            select(
                self._month_bucket().label("month"),
                func.sum(Expense.amount_cents).label("total"),
            )
            .where(owned_by(Expense, self.user_id))
            .group_by("month")
            .order_by(desc("month"))
        )
        return self._run("monthly_summary", stmt, shape_monthly_spend)

