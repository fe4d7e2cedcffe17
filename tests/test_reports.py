from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from database import Base
from models import User
from reports import ReportService
from schemas import BudgetIn, CategoryIn, ExpenseIn, WalletIn
from services import (
    BudgetService,
    CategoryService,
    ExpenseService,
    StoreFailure,
    WalletService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def add_user(session, username: str) -> User:
    user = User(
        username=username, email=f"{username}@example.com", password_hash="x"
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def spend(session, user_id, category, wallet, amount: str, on: date, note="Item"):
    return ExpenseService(session, user_id).create(
        ExpenseIn(
            description=note,
            amount=Decimal(amount),
            date=on,
            category_id=category.id,
            wallet_id=wallet.id,
        )
    )


def test_reports_are_empty_for_user_without_expenses() -> None:
    session = make_session()
    user = add_user(session, "alice")
    CategoryService(session, user.id).create(CategoryIn(name="Food"))
    WalletService(session, user.id).create(WalletIn(name="Cash", balance=Decimal("10")))

    reports = ReportService(session, user.id)
    assert reports.spend_by_category() == []
    assert reports.wallet_balances() == []
    assert reports.monthly_summary() == []

    usage = reports.budget_vs_spend()
    assert [(r.category_name, r.total_spent, r.limit) for r in usage] == [
        ("Food", Decimal("0.00"), None)
    ]


def test_spend_by_category_sums_and_orders_descending() -> None:
    session = make_session()
    user = add_user(session, "alice")
    categories = CategoryService(session, user.id)
    food = categories.create(CategoryIn(name="Food"))
    rent = categories.create(CategoryIn(name="Rent"))
    categories.create(CategoryIn(name="Unused"))
    cash = WalletService(session, user.id).create(
        WalletIn(name="Cash", balance=Decimal("100"))
    )

    spend(session, user.id, food, cash, "12.10", date(2024, 1, 2))
    spend(session, user.id, food, cash, "0.20", date(2024, 1, 3))
    spend(session, user.id, rent, cash, "700.00", date(2024, 1, 1))

    rows = ReportService(session, user.id).spend_by_category()

    assert [(r.category_name, r.total_spent) for r in rows] == [
        ("Rent", Decimal("700.00")),
        ("Food", Decimal("12.30")),
    ]
    all_expenses = ExpenseService(session, user.id).list()
    total = sum(e.amount_cents for e in all_expenses)
    assert sum(r.total_spent for r in rows) == Decimal(total) / 100
    assert len({r.category_id for r in rows}) == len(rows)


def test_spend_by_category_ties_keep_creation_order() -> None:
    session = make_session()
    user = add_user(session, "alice")
    categories = CategoryService(session, user.id)
    zeta = categories.create(CategoryIn(name="Zeta"))
    alpha = categories.create(CategoryIn(name="Alpha"))
    cash = WalletService(session, user.id).create(
        WalletIn(name="Cash", balance=Decimal("0"))
    )
    spend(session, user.id, alpha, cash, "5.00", date(2024, 3, 1))
    spend(session, user.id, zeta, cash, "5.00", date(2024, 3, 1))

    reports = ReportService(session, user.id)
    first = reports.spend_by_category()
    second = reports.spend_by_category()

    assert [r.category_id for r in first] == [zeta.id, alpha.id]
    assert [r.model_dump_json(by_alias=True) for r in first] == [
        r.model_dump_json(by_alias=True) for r in second
    ]


def test_wallet_balances_ties_keep_creation_order() -> None:
    session = make_session()
    user = add_user(session, "alice")
    food = CategoryService(session, user.id).create(CategoryIn(name="Food"))
    wallets = WalletService(session, user.id)
    savings = wallets.create(WalletIn(name="Savings", balance=Decimal("300")))
    bank = wallets.create(WalletIn(name="Bank", balance=Decimal("10")))
    cash = wallets.create(WalletIn(name="Cash", balance=Decimal("20")))
    spend(session, user.id, food, cash, "7.00", date(2024, 3, 1))
    spend(session, user.id, food, bank, "7.00", date(2024, 3, 2))
    spend(session, user.id, food, savings, "3.50", date(2024, 3, 3))
    spend(session, user.id, food, savings, "3.50", date(2024, 3, 4))

    rows = ReportService(session, user.id).wallet_balances()

    assert [r.wallet_id for r in rows] == [savings.id, bank.id, cash.id]
    assert {r.total_spent for r in rows} == {Decimal("7.00")}


def test_every_report_is_stable_across_reruns() -> None:
    session = make_session()
    user = add_user(session, "alice")
    categories = CategoryService(session, user.id)
    food = categories.create(CategoryIn(name="Food"))
    fun = categories.create(CategoryIn(name="Fun"))
    categories.create(CategoryIn(name="Fees"))
    wallets = WalletService(session, user.id)
    bank = wallets.create(WalletIn(name="Bank", balance=Decimal("100")))
    cash = wallets.create(WalletIn(name="Cash", balance=Decimal("100")))
    BudgetService(session, user.id).create(
        BudgetIn(name="Groceries", limit=Decimal("50"), category_id=food.id)
    )
    spend(session, user.id, food, bank, "4.00", date(2024, 1, 1))
    spend(session, user.id, fun, cash, "4.00", date(2024, 2, 1))
    spend(session, user.id, fun, bank, "4.00", date(2024, 3, 1))
    spend(session, user.id, food, cash, "4.00", date(2024, 4, 1))

    reports = ReportService(session, user.id)
    for run in (
        reports.spend_by_category,
        reports.budget_vs_spend,
        reports.wallet_balances,
        reports.monthly_summary,
    ):
        first = [r.model_dump_json(by_alias=True) for r in run()]
        second = [r.model_dump_json(by_alias=True) for r in run()]
        assert first
        assert first == second


def test_budget_vs_spend_keeps_every_category() -> None:
    session = make_session()
    user = add_user(session, "alice")
    categories = CategoryService(session, user.id)
    travel = categories.create(CategoryIn(name="Travel"))
    food = categories.create(CategoryIn(name="Food"))
    rent = categories.create(CategoryIn(name="Rent"))
    cash = WalletService(session, user.id).create(
        WalletIn(name="Cash", balance=Decimal("0"))
    )
    budgets = BudgetService(session, user.id)
    food_budget = budgets.create(
        BudgetIn(name="Groceries", limit=Decimal("500"), category_id=food.id)
    )
    budgets.create(BudgetIn(name="Housing", limit=Decimal("1000"), category_id=rent.id))

    spend(session, user.id, food, cash, "150.00", date(2024, 1, 4))
    spend(session, user.id, food, cash, "50.00", date(2024, 1, 9))

    rows = ReportService(session, user.id).budget_vs_spend()

    assert [r.category_name for r in rows] == ["Food", "Rent", "Travel"]
    food_row, rent_row, travel_row = rows
    assert food_row.budget_id == food_budget.id
    assert food_row.limit == Decimal("500.00")
    assert food_row.total_spent == Decimal("200.00")
    assert rent_row.limit == Decimal("1000.00")
    assert rent_row.total_spent == Decimal("0.00")
    assert travel_row.category_id == travel.id
    assert travel_row.budget_id is None
    assert travel_row.budget_name is None
    assert travel_row.limit is None
    assert travel_row.total_spent == Decimal("0.00")


def test_wallet_balance_is_reported_independently_of_spend() -> None:
    session = make_session()
    user = add_user(session, "alice")
    food = CategoryService(session, user.id).create(CategoryIn(name="Food"))
    wallets = WalletService(session, user.id)
    bank = wallets.create(WalletIn(name="Bank", balance=Decimal("1000")))
    cash = wallets.create(WalletIn(name="Cash", balance=Decimal("50")))
    wallets.create(WalletIn(name="Idle", balance=Decimal("5")))

    spend(session, user.id, food, bank, "100.00", date(2024, 1, 1))
    spend(session, user.id, food, bank, "50.00", date(2024, 1, 2))
    spend(session, user.id, food, cash, "10.00", date(2024, 1, 3))

    rows = ReportService(session, user.id).wallet_balances()

    assert [(r.wallet_name, r.balance, r.total_spent) for r in rows] == [
        ("Bank", Decimal("1000.00"), Decimal("150.00")),
        ("Cash", Decimal("50.00"), Decimal("10.00")),
    ]
    assert WalletService(session, user.id).get(bank.id).balance_cents == 100_000


def test_monthly_summary_buckets_by_month_descending() -> None:
    session = make_session()
    user = add_user(session, "alice")
    food = CategoryService(session, user.id).create(CategoryIn(name="Food"))
    cash = WalletService(session, user.id).create(
        WalletIn(name="Cash", balance=Decimal("0"))
    )
    spend(session, user.id, food, cash, "10.00", date(2024, 1, 5))
    spend(session, user.id, food, cash, "20.00", date(2024, 1, 20))
    spend(session, user.id, food, cash, "5.00", date(2024, 2, 1))
    spend(session, user.id, food, cash, "1.00", date(2023, 11, 30))

    rows = ReportService(session, user.id).monthly_summary()

    assert [(r.month, r.total_spent) for r in rows] == [
        (date(2024, 2, 1), Decimal("5.00")),
        (date(2024, 1, 1), Decimal("30.00")),
        (date(2023, 11, 1), Decimal("1.00")),
    ]


def test_reports_never_cross_users() -> None:
    session = make_session()
    alice = add_user(session, "alice")
    bob = add_user(session, "bob")

    a_food = CategoryService(session, alice.id).create(CategoryIn(name="Food"))
    b_food = CategoryService(session, bob.id).create(CategoryIn(name="Food"))
    a_cash = WalletService(session, alice.id).create(
        WalletIn(name="Cash", balance=Decimal("10"))
    )
    b_cash = WalletService(session, bob.id).create(
        WalletIn(name="Cash", balance=Decimal("99"))
    )
    BudgetService(session, bob.id).create(
        BudgetIn(name="Food cap", limit=Decimal("10"), category_id=b_food.id)
    )

    spend(session, alice.id, a_food, a_cash, "1.00", date(2024, 1, 1))
    spend(session, bob.id, b_food, b_cash, "40.00", date(2024, 1, 1))
    spend(session, bob.id, b_food, b_cash, "2.00", date(2024, 5, 1))

    reports = ReportService(session, alice.id)
    assert [(r.category_id, r.total_spent) for r in reports.spend_by_category()] == [
        (a_food.id, Decimal("1.00"))
    ]
    usage = reports.budget_vs_spend()
    assert [(r.category_id, r.budget_id, r.total_spent) for r in usage] == [
        (a_food.id, None, Decimal("1.00"))
    ]
    wallets = reports.wallet_balances()
    assert [(r.wallet_id, r.balance) for r in wallets] == [(a_cash.id, Decimal("10.00"))]
    assert [r.month for r in reports.monthly_summary()] == [date(2024, 1, 1)]


def test_unknown_user_gets_empty_reports() -> None:
    session = make_session()
    reports = ReportService(session, 12345)
    assert reports.spend_by_category() == []
    assert reports.budget_vs_spend() == []
    assert reports.wallet_balances() == []
    assert reports.monthly_summary() == []


def test_store_failure_is_wrapped() -> None:
    engine = create_engine("sqlite:///:memory:")

    with Session(engine) as session:
        with pytest.raises(StoreFailure):
            ReportService(session, 1).spend_by_category()

    with Session(engine) as session:
        with pytest.raises(StoreFailure):
            ReportService(session, 1).monthly_summary()
