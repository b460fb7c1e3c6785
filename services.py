from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, delete, extract, func, or_, select
from sqlalchemy.orm import Session, contains_eager

from models import (
    Category,
    Expense,
    TransactionType,
    cents_to_decimal,
    decimal_to_cents,
)
from periods import last_days, trailing_months
from schemas import CategoryIn, ExpenseIn, ExpenseQuery

logger = logging.getLogger(__name__)

STATS_WINDOW_DAYS = 30


class CategoryNotFound(ValueError):
    pass


class CategoryExists(ValueError):
    pass


class ExpenseNotFound(ValueError):
    pass


def format_amount(cents: Optional[int]) -> str:
    return str(cents_to_decimal(cents))


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass
class ExpensePage:
    items: list[Expense]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.limit)


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name.asc())
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise CategoryNotFound("Category not found")
        return category

    def find_by_name(self, name: str) -> Optional[Category]:
        return self.session.scalar(
            select(Category).where(func.lower(Category.name) == name.strip().lower())
        )

    def create(self, data: CategoryIn) -> Category:
        if self.find_by_name(data.name):
            raise CategoryExists("Category with this name already exists")
        category = Category(
            name=data.name.strip(),
            type=data.type,
            color=data.color,
            icon=data.icon,
            description=data.description,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} name={category.name!r}")
        return category

    def usage(self, user_id: str) -> list[dict[str, object]]:
        """Categories that appear in ``user_id``'s expenses, most used first."""
        usage_count = func.count(Expense.id)
        stmt = (
            select(Category, usage_count.label("count"))
            .join(Expense, Expense.category_id == Category.id)
            .where(Expense.user_id == user_id)
            .group_by(Category.id)
            .order_by(usage_count.desc(), Category.name.asc())
        )
        return [
            {
                "id": category.id,
                "name": category.name,
                "type": category.type,
                "color": category.color,
                "icon": category.icon,
                "count": int(count),
            }
            for category, count in self.session.execute(stmt).all()
        ]


class ExpenseService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def _select(self):
        return (
            select(Expense)
            .outerjoin(Category, Category.id == Expense.category_id)
            .options(contains_eager(Expense.category))
        )

    def _conditions(self, query: ExpenseQuery) -> list:
        conditions = [Expense.user_id == self.user_id]
        window = query.window
        if window is not None:
            conditions.append(Expense.date >= window.start)
            conditions.append(Expense.date < window.end)
        if query.transaction_type is not None:
            conditions.append(Expense.type == query.transaction_type)
        if query.category:
            conditions.append(Category.name == query.category)
        if query.category_id:
            conditions.append(Expense.category_id == query.category_id)
        if query.status:
            conditions.append(Expense.status == query.status)
        if query.search:
            like = f"%{_escape_like(query.search.strip().lower())}%"
            conditions.append(
                or_(
                    *(
                        func.lower(func.coalesce(column, "")).like(like, escape="\\")
                        for column in (Expense.title, Expense.description, Expense.notes)
                    )
                )
            )
        return conditions

    def list(self, query: ExpenseQuery) -> ExpensePage:
        conditions = self._conditions(query)
        stmt = (
            self._select()
            .where(*conditions)
            .order_by(Expense.date.desc(), Expense.id.desc())
            .offset(query.offset)
            .limit(query.limit)
        )
        items = self.session.scalars(stmt).all()
        count_stmt = (
            select(func.count(Expense.id))
            .select_from(Expense)
            .outerjoin(Category, Category.id == Expense.category_id)
            .where(*conditions)
        )
        total = int(self.session.execute(count_stmt).scalar_one() or 0)
        return ExpensePage(items=items, total=total, page=query.page, limit=query.limit)

    def all_matching(self, query: ExpenseQuery) -> list[Expense]:
        stmt = (
            self._select()
            .where(*self._conditions(query))
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, expense_id: int) -> Expense:
        stmt = self._select().where(
            Expense.id == expense_id, Expense.user_id == self.user_id
        )
        expense = self.session.scalar(stmt)
        if not expense:
            raise ExpenseNotFound("Expense not found")
        return expense

    def _require_category(self, category_id: int) -> None:
        if not self.session.get(Category, category_id):
            raise CategoryNotFound("Category not found")

    def create(self, data: ExpenseIn) -> Expense:
        self._require_category(data.category_id)
        now = datetime.utcnow()
        expense = Expense(
            user_id=self.user_id,
            title=data.title,
            description=data.description,
            amount_cents=decimal_to_cents(data.amount),
            type=data.type,
            date=data.date or now,
            category_id=data.category_id,
            notes=data.notes,
            status=data.status,
            created_at=now,
            updated_at=now,
        )
        self.session.add(expense)
        self.session.commit()
        logger.info(f"expense_created: id={expense.id} user={self.user_id}")
        return self.get(expense.id)

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        self._require_category(data.category_id)
        expense.title = data.title
        expense.description = data.description
        expense.amount_cents = decimal_to_cents(data.amount)
        expense.type = data.type
        if data.date is not None:
            expense.date = data.date
        expense.category_id = data.category_id
        expense.notes = data.notes
        expense.status = data.status
        expense.updated_at = datetime.utcnow()
        self.session.commit()
        self.session.expire(expense, ["category"])
        logger.info(f"expense_updated: id={expense.id} user={self.user_id}")
        return self.get(expense.id)

    def delete(self, expense_id: int) -> None:
        result = self.session.execute(
            delete(Expense).where(
                Expense.id == expense_id, Expense.user_id == self.user_id
            )
        )
        if not result.rowcount:
            raise ExpenseNotFound("Expense not found")
        self.session.commit()
        logger.info(f"expense_deleted: id={expense_id} user={self.user_id}")


class MetricsService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def last_30_days(self, now: Optional[datetime] = None) -> dict[str, str]:
        window = last_days(STATS_WINDOW_DAYS, now=now)
        stmt = select(
            func.sum(
                case(
                    (Expense.type == TransactionType.income, Expense.amount_cents),
                    else_=None,
                )
            ).label("income"),
            func.sum(
                case(
                    (Expense.type == TransactionType.expense, Expense.amount_cents),
                    else_=None,
                )
            ).label("expenses"),
        ).where(
            Expense.user_id == self.user_id,
            Expense.date >= window.start,
            Expense.date < window.end,
        )
        row = self.session.execute(stmt).one()
        income = cents_to_decimal(row.income)
        expenses = cents_to_decimal(row.expenses)
        return {
            "income": str(income),
            "expenses": str(expenses),
            "net": str(income - expenses),
        }

    def category_breakdown(self) -> list[dict[str, object]]:
        total = func.sum(Expense.amount_cents)
        stmt = (
            select(
                Category.id,
                Category.name,
                Category.color,
                Category.icon,
                total.label("total"),
                func.count(Expense.id).label("expense_count"),
            )
            .join(Category, Category.id == Expense.category_id)
            .where(
                Expense.user_id == self.user_id,
                Expense.type == TransactionType.expense,
            )
            .group_by(Category.id, Category.name, Category.color, Category.icon)
            .order_by(total.desc(), Category.name.asc())
        )
        return [
            {
                "category": {
                    "id": row.id,
                    "name": row.name,
                    "color": row.color,
                    "icon": row.icon,
                },
                "total": format_amount(row.total),
                "count": int(row.expense_count),
            }
            for row in self.session.execute(stmt).all()
        ]

    def total_spent(self) -> str:
        stmt = select(func.sum(Expense.amount_cents)).where(
            Expense.user_id == self.user_id,
            Expense.type == TransactionType.expense,
        )
        return format_amount(self.session.execute(stmt).scalar_one())

    def monthly_series(
        self, months: int = 12, *, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        buckets = trailing_months(months, today=today)
        start = datetime(buckets[0].year, buckets[0].month, 1)
        year = extract("year", Expense.date).label("year")
        month = extract("month", Expense.date).label("month")
        stmt = (
            select(
                year,
                month,
                Expense.type,
                func.sum(Expense.amount_cents).label("total"),
            )
            .where(Expense.user_id == self.user_id, Expense.date >= start)
            .group_by(year, month, Expense.type)
        )
        totals: dict[tuple[int, int, TransactionType], int] = {}
        for row in self.session.execute(stmt):
            totals[(int(row.year), int(row.month), row.type)] = int(row.total or 0)

        out: list[dict[str, object]] = []
        for bucket in buckets:
            income = cents_to_decimal(
                totals.get((bucket.year, bucket.month, TransactionType.income))
            )
            expenses = cents_to_decimal(
                totals.get((bucket.year, bucket.month, TransactionType.expense))
            )
            out.append(
                {
                    "year": bucket.year,
                    "month": bucket.month,
                    "label": f"{bucket.year:04d}-{bucket.month:02d}",
                    "income": str(income),
                    "expenses": str(expenses),
                    "net": str(income - expenses),
                }
            )
        return out
