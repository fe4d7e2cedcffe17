import logging
from decimal import Decimal
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import current_user_id, generate_token, get_db
from config import get_settings
from filters import expense_filters_from_params
from money import parse_amount
from reports import ReportService
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetPatch,
    BudgetUsageRow,
    CategoryIn,
    CategoryOut,
    CategoryPatch,
    CategorySpendRow,
    ExpenseIn,
    ExpenseOut,
    ExpensePatch,
    LoginIn,
    MessageOut,
    MonthlySpendRow,
    RegisterIn,
    TokenOut,
    WalletIn,
    WalletOut,
    WalletPatch,
    WalletSpendRow,
)
from services import (
    BudgetService,
    CategoryService,
    ExpenseService,
    InvalidCredentials,
    NotOwned,
    StoreFailure,
    UniquenessConflict,
    UserService,
    WalletService,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")


@app.exception_handler(StoreFailure)
async def store_failure_handler(request: Request, exc: StoreFailure):
    return JSONResponse(status_code=500, content={"detail": "Server error"})


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"store_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Server error"})


def _raise_http(exc: ValueError) -> None:
    if isinstance(exc, NotOwned):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, UniquenessConflict):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if isinstance(exc, InvalidCredentials):
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


# Auth


@app.post("/api/auth/register", response_model=TokenOut, status_code=201)
def register(data: RegisterIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).register(data)
    except ValueError as exc:
        _raise_http(exc)
    logger.info(f"user_registered: user_id={user.id}")
    return TokenOut(id=user.id, email=user.email, token=generate_token(user.id))


@app.post("/api/auth/login", response_model=TokenOut)
def login(data: LoginIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).authenticate(str(data.email), data.password)
    except ValueError as exc:
        _raise_http(exc)
    return TokenOut(id=user.id, email=user.email, token=generate_token(user.id))


@app.delete("/api/auth/me", response_model=MessageOut)
def delete_account(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        UserService(db).delete(user_id)
    except ValueError as exc:
        _raise_http(exc)
    logger.info(f"user_deleted: user_id={user_id}")
    return MessageOut(message="Account deleted successfully")


# Categories


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).create(data)
    except ValueError as exc:
        _raise_http(exc)
    return CategoryOut.from_model(category)


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return [CategoryOut.from_model(c) for c in CategoryService(db, user_id).list(search)]


@app.patch("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).update(category_id, data)
    except ValueError as exc:
        _raise_http(exc)
    return CategoryOut.from_model(category)


@app.delete("/api/categories/{category_id}", response_model=MessageOut)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        _raise_http(exc)
    return MessageOut(message="Category deleted successfully")


# Wallets


@app.post("/api/wallets", response_model=WalletOut, status_code=201)
def create_wallet(
    data: WalletIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        wallet = WalletService(db, user_id).create(data)
    except ValueError as exc:
        _raise_http(exc)
    return WalletOut.from_model(wallet)


@app.get("/api/wallets", response_model=list[WalletOut])
def list_wallets(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return [WalletOut.from_model(w) for w in WalletService(db, user_id).list(search)]


@app.patch("/api/wallets/{wallet_id}", response_model=WalletOut)
def update_wallet(
    wallet_id: int,
    data: WalletPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        wallet = WalletService(db, user_id).update(wallet_id, data)
    except ValueError as exc:
        _raise_http(exc)
    return WalletOut.from_model(wallet)


@app.delete("/api/wallets/{wallet_id}", response_model=MessageOut)
def delete_wallet(
    wallet_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        WalletService(db, user_id).delete(wallet_id)
    except ValueError as exc:
        _raise_http(exc)
    return MessageOut(message="Wallet deleted successfully")


# Budgets


@app.post("/api/budgets", response_model=BudgetOut, status_code=201)
def create_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).create(data)
    except ValueError as exc:
        _raise_http(exc)
    return BudgetOut.from_model(budget)


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return [BudgetOut.from_model(b) for b in BudgetService(db, user_id).list(search)]


@app.patch("/api/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: int,
    data: BudgetPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db, user_id).update(budget_id, data)
    except ValueError as exc:
        _raise_http(exc)
    return BudgetOut.from_model(budget)


@app.delete("/api/budgets/{budget_id}", response_model=MessageOut)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except ValueError as exc:
        _raise_http(exc)
    return MessageOut(message="Budget deleted successfully")


# Expenses


@app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        expense = ExpenseService(db, user_id).create(data)
    except ValueError as exc:
        _raise_http(exc)
    return ExpenseOut.from_model(expense)


@app.get("/api/expenses", response_model=list[ExpenseOut])
def list_expenses(
    search: Optional[str] = None,
    category_id: Optional[int] = Query(default=None, alias="categoryId"),
    min_amount: Optional[Decimal] = Query(default=None, ge=0),
    max_amount: Optional[Decimal] = Query(default=None, ge=0),
    sort: Optional[Literal["amount", "date"]] = None,
    order: Optional[Literal["asc", "desc", "ASC", "DESC"]] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        filters = expense_filters_from_params(
            search=search,
            category_id=category_id,
            min_cents=parse_amount(min_amount) if min_amount is not None else None,
            max_cents=parse_amount(max_amount) if max_amount is not None else None,
            sort=sort,
            order=order,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    expenses = ExpenseService(db, user_id).list(filters)
    return [ExpenseOut.from_model(e) for e in expenses]


@app.patch("/api/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    data: ExpensePatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        expense = ExpenseService(db, user_id).update(expense_id, data)
    except ValueError as exc:
        _raise_http(exc)
    return ExpenseOut.from_model(expense)


@app.delete("/api/expenses/{expense_id}", response_model=MessageOut)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        ExpenseService(db, user_id).delete(expense_id)
    except ValueError as exc:
        _raise_http(exc)
    return MessageOut(message="Expense deleted successfully")


# Reports


@app.get("/api/reports/totalSpent/byCategory", response_model=list[CategorySpendRow])
def report_spend_by_category(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return ReportService(db, user_id).spend_by_category()


@app.get("/api/reports/budgets/categoryLimit", response_model=list[BudgetUsageRow])
def report_budget_vs_spend(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return ReportService(db, user_id).budget_vs_spend()


@app.get("/api/reports/wallets/balances", response_model=list[WalletSpendRow])
def report_wallet_balances(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return ReportService(db, user_id).wallet_balances()


@app.get(
    "/api/reports/expenses/monthlySummary", response_model=list[MonthlySpendRow]
)
def report_monthly_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return ReportService(db, user_id).monthly_summary()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
