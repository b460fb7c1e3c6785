from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    BigInteger,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class ExpenseStatus(str, Enum):
    cleared = "cleared"
    pending = "pending"
    reconciled = "reconciled"


CENTS = Decimal("0.01")


def cents_to_decimal(cents: Optional[int]) -> Decimal:
    """Exact currency value for an integer cent amount; ``None`` is zero."""
    if cents is None:
        return Decimal("0")
    return Decimal(int(cents)).scaleb(-2)


def decimal_to_cents(amount: Decimal) -> int:
    quantized = amount.quantize(CENTS)
    if quantized != amount:
        raise ValueError("Amount must have at most two decimal places")
    return int(quantized.scaleb(2))


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType, native_enum=False),
        nullable=False,
        default=TransactionType.expense,
    )
    color: Mapped[Optional[str]] = mapped_column(String(50))
    icon: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[Optional[str]] = mapped_column(Text)

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="category"
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType, native_enum=False),
        nullable=False,
        default=TransactionType.expense,
    )
    date: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[ExpenseStatus] = mapped_column(
        SAEnum(ExpenseStatus, native_enum=False),
        nullable=False,
        default=ExpenseStatus.cleared,
    )

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="expenses"
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_expense_amount_positive"),
        Index("ix_expenses_user_id", "user_id"),
        Index("ix_expenses_date", "date"),
        Index("ix_expenses_category_id", "category_id"),
    )

    @property
    def amount(self) -> Decimal:
        return cents_to_decimal(self.amount_cents)
