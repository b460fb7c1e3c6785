from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from models import ExpenseStatus, TransactionType
from periods import DateWindow, resolve_window, to_utc_naive

# keeps the row offset within a 64-bit SQL integer
MAX_PAGE = 1_000_000


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class CategoryIn(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType = TransactionType.expense
    color: Optional[str] = Field(default=None, max_length=50)
    icon: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class CategoryRef(ApiModel):
    id: int
    name: str
    color: Optional[str] = None
    icon: Optional[str] = None


class CategoryOut(CategoryRef):
    type: TransactionType
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryUsageOut(CategoryRef):
    type: TransactionType
    count: int


class ExpenseIn(ApiModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = None
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    type: TransactionType
    date: Optional[datetime] = None
    category_id: int = Field(..., gt=0)
    notes: Optional[str] = None
    status: ExpenseStatus = ExpenseStatus.cleared

    @field_validator("date", mode="before")
    @classmethod
    def _date_only_is_midnight(cls, value: Any) -> Any:
        if isinstance(value, str) and len(value.strip()) == 10:
            day = date.fromisoformat(value.strip())
            return datetime(day.year, day.month, day.day)
        return value

    @field_validator("date")
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return to_utc_naive(value)


class ExpenseOut(ApiModel):
    id: int
    user_id: str
    title: str
    description: Optional[str] = None
    amount: Decimal
    type: TransactionType
    date: datetime
    category_id: int
    category: Optional[CategoryRef] = None
    notes: Optional[str] = None
    status: ExpenseStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExpenseQuery(ApiModel):
    page: int = Field(default=1, ge=1, le=MAX_PAGE)
    limit: int = Field(default=10, ge=1, le=100)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    type: Literal["expense", "income", "all"] = "all"
    category: Optional[str] = Field(default=None, max_length=100)
    category_id: Optional[int] = Field(default=None, gt=0)
    status: Optional[ExpenseStatus] = None
    search: Optional[str] = Field(default=None, max_length=200)

    _window: Optional[DateWindow] = PrivateAttr(default=None)

    @model_validator(mode="before")
    @classmethod
    def _blank_means_absent(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: value
                for key, value in data.items()
                if not (isinstance(value, str) and value.strip() == "")
            }
        return data

    @model_validator(mode="after")
    def _resolve_window(self) -> "ExpenseQuery":
        self._window = resolve_window(self.start_date, self.end_date)
        return self

    @property
    def window(self) -> Optional[DateWindow]:
        return self._window

    @property
    def transaction_type(self) -> Optional[TransactionType]:
        if self.type == "all":
            return None
        return TransactionType(self.type)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class LegacyExpenseRow(BaseModel):
    user_id: str
    title: str
    description: Optional[str]
    amount_cents: int
    type: TransactionType
    date: datetime
    category: str
    notes: Optional[str]
    status: ExpenseStatus
