from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import hash_password, verify_password
from filters import ExpenseFilter, apply_expense_filters, name_search, owned_by
from models import Budget, Category, Expense, User, Wallet
from money import parse_amount
from schemas import (
    BudgetIn,
    BudgetPatch,
    CategoryIn,
    CategoryPatch,
    ExpenseIn,
    ExpensePatch,
    RegisterIn,
    WalletIn,
    WalletPatch,
)

logger = logging.getLogger(__name__)


class NotOwned(ValueError):
    """A referenced row does not exist or belongs to another user."""


class UniquenessConflict(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


class StoreFailure(RuntimeError):
    pass


def _commit(session: Session, conflict_message: str) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.info(f"uniqueness_conflict: {conflict_message}")
        raise UniquenessConflict(conflict_message) from exc


def _name_taken(
    session: Session, model, user_id: int, name: str, exclude_id: Optional[int] = None
) -> bool:
    stmt = select(model.id).where(
        owned_by(model, user_id), func.lower(model.name) == name.strip().lower()
    )
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return session.scalar(stmt) is not None


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: RegisterIn) -> User:
        email = str(data.email).lower()
        existing = self.session.scalar(
            select(User).where(
                (func.lower(User.email) == email) | (User.username == data.username)
            )
        )
        if existing:
            raise UniquenessConflict("User already exists")
        user = User(
            username=data.username.strip(),
            email=email,
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        _commit(self.session, "User already exists")
        self.session.refresh(user)
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.session.scalar(
            select(User).where(func.lower(User.email) == email.lower())
        )
        if not user or not verify_password(password, user.password_hash):
            raise InvalidCredentials("Invalid credentials")
        return user

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def delete(self, user_id: int) -> None:
        user = self.session.get(User, user_id)
        if not user:
            raise NotOwned("User not found")
        self.session.delete(user)
        self.session.commit()


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, search: Optional[str] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(owned_by(Category, self.user_id))
            .order_by(Category.id)
        )
        predicate = name_search(Category, search)
        if predicate is not None:
            stmt = stmt.where(predicate)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            logger.debug(
                f"ownership_denied: category_id={category_id} user_id={self.user_id}"
            )
            raise NotOwned("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        if _name_taken(self.session, Category, self.user_id, data.name):
            raise UniquenessConflict("Category name must be unique")
        category = Category(user_id=self.user_id, name=data.name.strip())
        self.session.add(category)
        _commit(self.session, "Category name must be unique")
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryPatch) -> Category:
        category = self.get(category_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes:
            if _name_taken(
                self.session, Category, self.user_id, changes["name"], category.id
            ):
                raise UniquenessConflict("Category name must be unique")
            category.name = changes["name"].strip()
        _commit(self.session, "Category name must be unique")
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        self.session.delete(category)
        self.session.commit()


class WalletService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, search: Optional[str] = None) -> list[Wallet]:
        stmt = select(Wallet).where(owned_by(Wallet, self.user_id)).order_by(Wallet.id)
        predicate = name_search(Wallet, search)
        if predicate is not None:
            stmt = stmt.where(predicate)
        return list(self.session.scalars(stmt).all())

    def get(self, wallet_id: int) -> Wallet:
        wallet = self.session.get(Wallet, wallet_id)
        if not wallet or wallet.user_id != self.user_id:
            logger.debug(
                f"ownership_denied: wallet_id={wallet_id} user_id={self.user_id}"
            )
            raise NotOwned("Wallet not found")
        return wallet

    def create(self, data: WalletIn) -> Wallet:
        if _name_taken(self.session, Wallet, self.user_id, data.name):
            raise UniquenessConflict("Wallet name must be unique")
        wallet = Wallet(
            user_id=self.user_id,
            name=data.name.strip(),
            balance_cents=parse_amount(data.balance),
        )
        self.session.add(wallet)
        _commit(self.session, "Wallet name must be unique")
        self.session.refresh(wallet)
        return wallet

    def update(self, wallet_id: int, data: WalletPatch) -> Wallet:
        wallet = self.get(wallet_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes:
            if _name_taken(self.session, Wallet, self.user_id, changes["name"], wallet.id):
                raise UniquenessConflict("Wallet name must be unique")
            wallet.name = changes["name"].strip()
        if "balance" in changes:
            wallet.balance_cents = parse_amount(changes["balance"])
        _commit(self.session, "Wallet name must be unique")
        return wallet

    def delete(self, wallet_id: int) -> None:
        wallet = self.get(wallet_id)
        self.session.delete(wallet)
        self.session.commit()


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, search: Optional[str] = None) -> list[Budget]:
        stmt = select(Budget).where(owned_by(Budget, self.user_id)).order_by(Budget.id)
        predicate = name_search(Budget, search)
        if predicate is not None:
            stmt = stmt.where(predicate)
        return list(self.session.scalars(stmt).all())

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            logger.debug(
                f"ownership_denied: budget_id={budget_id} user_id={self.user_id}"
            )
            raise NotOwned("Budget not found")
        return budget

    def create(self, data: BudgetIn) -> Budget:
        category = CategoryService(self.session, self.user_id).get(data.category_id)
        # One budget per category; checked here, not by the schema.
        existing = self.session.scalar(
            select(Budget.id).where(
                owned_by(Budget, self.user_id), Budget.category_id == category.id
            )
        )
        if existing is not None:
            raise UniquenessConflict("A budget already exists for this category")
        if _name_taken(self.session, Budget, self.user_id, data.name):
            raise UniquenessConflict("Budget name must be unique")
        budget = Budget(
            user_id=self.user_id,
            category_id=category.id,
            name=data.name.strip(),
            limit_cents=parse_amount(data.limit),
        )
        self.session.add(budget)
        _commit(self.session, "A budget already exists for this category")
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, data: BudgetPatch) -> Budget:
        budget = self.get(budget_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes:
            if _name_taken(self.session, Budget, self.user_id, changes["name"], budget.id):
                raise UniquenessConflict("Budget name must be unique")
            budget.name = changes["name"].strip()
        if "limit" in changes:
            budget.limit_cents = parse_amount(changes["limit"])
        _commit(self.session, "Budget name must be unique")
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, filters: Sequence[ExpenseFilter] = ()) -> list[Expense]:
        stmt = select(Expense).where(owned_by(Expense, self.user_id))
        stmt = apply_expense_filters(stmt, filters)
        return list(self.session.scalars(stmt).all())

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            logger.debug(
                f"ownership_denied: expense_id={expense_id} user_id={self.user_id}"
            )
            raise NotOwned("Expense not found")
        return expense

    def create(self, data: ExpenseIn) -> Expense:
        wallet = WalletService(self.session, self.user_id).get(data.wallet_id)
        category = CategoryService(self.session, self.user_id).get(data.category_id)
        expense = Expense(
            user_id=self.user_id,
            description=data.description.strip(),
            amount_cents=parse_amount(data.amount),
            category_id=category.id,
            wallet_id=wallet.id,
        )
        if data.date is not None:
            expense.date = data.date
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: ExpensePatch) -> Expense:
        expense = self.get(expense_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "wallet_id" in changes:
            wallet = WalletService(self.session, self.user_id).get(changes["wallet_id"])
            expense.wallet_id = wallet.id
        if "category_id" in changes:
            category = CategoryService(self.session, self.user_id).get(
                changes["category_id"]
            )
            expense.category_id = category.id
        if "description" in changes:
            expense.description = changes["description"].strip()
        if "amount" in changes:
            expense.amount_cents = parse_amount(changes["amount"])
        if "date" in changes:
            expense.date = changes["date"]
        self.session.commit()
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()
