import datetime as dt
from datetime import date
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    PlainSerializer,
    StringConstraints,
)
from pydantic.alias_generators import to_camel

from models import Budget, Category, Expense, Wallet
from money import cents_to_amount

# JSON responses carry money as a number; Python callers keep the Decimal.
Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]
AmountIn = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]

# Blank input is rejected after trimming, so stored labels are never empty.
Name = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)
]
Description = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)
]
Username = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=80)
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterIn(CamelModel):
    username: Username
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class LoginIn(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenOut(CamelModel):
    id: int
    email: str
    token: str


class CategoryIn(CamelModel):
    name: Name


class CategoryPatch(CamelModel):
    name: Optional[Name] = None


class CategoryOut(CamelModel):
    id: int
    name: str
    user_id: int

    @classmethod
    def from_model(cls, category: Category) -> "CategoryOut":
        return cls(id=category.id, name=category.name, user_id=category.user_id)


class WalletIn(CamelModel):
    name: Name
    balance: AmountIn


class WalletPatch(CamelModel):
    name: Optional[Name] = None
    balance: Optional[AmountIn] = None


class WalletOut(CamelModel):
    id: int
    name: str
    balance: Money
    user_id: int

    @classmethod
    def from_model(cls, wallet: Wallet) -> "WalletOut":
        return cls(
            id=wallet.id,
            name=wallet.name,
            balance=cents_to_amount(wallet.balance_cents),
            user_id=wallet.user_id,
        )


class BudgetIn(CamelModel):
    name: Name
    limit: AmountIn
    category_id: int


class BudgetPatch(CamelModel):
    name: Optional[Name] = None
    limit: Optional[AmountIn] = None


class BudgetOut(CamelModel):
    id: int
    name: str
    limit: Money
    user_id: int
    category_id: int

    @classmethod
    def from_model(cls, budget: Budget) -> "BudgetOut":
        return cls(
            id=budget.id,
            name=budget.name,
            limit=cents_to_amount(budget.limit_cents),
            user_id=budget.user_id,
            category_id=budget.category_id,
        )


class ExpenseIn(CamelModel):
    description: Description
    amount: AmountIn
    date: Optional[dt.date] = None
    category_id: int
    wallet_id: int


class ExpensePatch(CamelModel):
    description: Optional[Description] = None
    amount: Optional[AmountIn] = None
    date: Optional[dt.date] = None
    category_id: Optional[int] = None
    wallet_id: Optional[int] = None


class ExpenseOut(CamelModel):
    id: int
    description: str
    amount: Money
    date: dt.date
    user_id: int
    category_id: int
    wallet_id: int

    @classmethod
    def from_model(cls, expense: Expense) -> "ExpenseOut":
        return cls(
            id=expense.id,
            description=expense.description,
            amount=cents_to_amount(expense.amount_cents),
            date=expense.date,
            user_id=expense.user_id,
            category_id=expense.category_id,
            wallet_id=expense.wallet_id,
        )


class MessageOut(BaseModel):
    message: str


# Report rows. Aggregates default to 0.00; foreign attributes to None.


class CategorySpendRow(CamelModel):
    category_id: int
    category_name: str
    total_spent: Money


class BudgetUsageRow(CamelModel):
    category_id: int
    category_name: str
    budget_id: Optional[int] = None
    budget_name: Optional[str] = None
    limit: Optional[Money] = None
    total_spent: Money


class WalletSpendRow(CamelModel):
    wallet_id: int
    wallet_name: str
    balance: Money
    total_spent: Money


class MonthlySpendRow(CamelModel):
    month: date
    total_spent: Money
