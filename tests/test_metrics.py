from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Category, Expense, TransactionType
from services import MetricsService

NOW = datetime(2024, 6, 30, 12, 0)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def add(session, user_id, category, cents, type=TransactionType.expense, when=NOW):
    session.add(
        Expense(
            user_id=user_id,
            title="Entry",
            amount_cents=cents,
            type=type,
            date=when,
            category_id=category.id,
        )
    )
    session.commit()


def make_categories(session):
    food = Category(name="Food", type=TransactionType.expense, color="#F97316")
    rent = Category(name="Rent", type=TransactionType.expense)
    salary = Category(name="Salary", type=TransactionType.income)
    unused = Category(name="Unused", type=TransactionType.expense)
    session.add_all([food, rent, salary, unused])
    session.commit()
    return food, rent, salary, unused


def test_last_30_days_income_expenses_and_net() -> None:
    with make_session() as session:
        food, _, salary, _ = make_categories(session)
        add(session, "u", salary, 10000, TransactionType.income, NOW - timedelta(days=3))
        add(session, "u", food, 4000, when=NOW - timedelta(days=10))
        add(session, "u", food, 999, when=NOW - timedelta(days=31))
        add(session, "other", food, 5000, when=NOW - timedelta(days=1))

        totals = MetricsService(session, "u").last_30_days(now=NOW)

        assert totals == {"income": "100.00", "expenses": "40.00", "net": "60.00"}


def test_aggregates_default_to_zero_strings() -> None:
    with make_session() as session:
        metrics = MetricsService(session, "nobody")

        assert metrics.last_30_days(now=NOW) == {
            "income": "0",
            "expenses": "0",
            "net": "0",
        }
        assert metrics.total_spent() == "0"
        assert metrics.category_breakdown() == []


def test_sums_are_exact_to_the_cent() -> None:
    with make_session() as session:
        food, _, _, _ = make_categories(session)
        for _ in range(3):
            add(session, "u", food, 10)
        add(session, "u", food, 20)

        metrics = MetricsService(session, "u")

        assert metrics.total_spent() == "0.50"
        assert Decimal(metrics.total_spent()) == Decimal("0.1") * 3 + Decimal("0.2")


def test_category_breakdown_is_expense_only_all_time_and_sorted() -> None:
    with make_session() as session:
        food, rent, salary, _ = make_categories(session)
        add(session, "u", food, 1250, when=datetime(2020, 1, 1))
        add(session, "u", food, 750)
        add(session, "u", rent, 90000)
        add(session, "u", salary, 500000, TransactionType.income)
        add(session, "other", food, 100000)

        breakdown = MetricsService(session, "u").category_breakdown()

        assert breakdown == [
            {
                "category": {"id": rent.id, "name": "Rent", "color": None, "icon": None},
                "total": "900.00",
                "count": 1,
            },
            {
                "category": {
                    "id": food.id,
                    "name": "Food",
                    "color": "#F97316",
                    "icon": None,
                },
                "total": "20.00",
                "count": 2,
            },
        ]


def test_total_spent_ignores_income() -> None:
    with make_session() as session:
        food, _, salary, _ = make_categories(session)
        add(session, "u", food, 1999)
        add(session, "u", salary, 100000, TransactionType.income)

        assert MetricsService(session, "u").total_spent() == "19.99"


def test_monthly_series_fills_empty_months() -> None:
    with make_session() as session:
        food, _, salary, _ = make_categories(session)
        add(session, "u", food, 1500, when=datetime(2024, 4, 10))
        add(session, "u", salary, 300000, TransactionType.income, datetime(2024, 6, 1))
        add(session, "u", food, 2500, when=datetime(2024, 6, 15))
        add(session, "u", food, 9999, when=datetime(2023, 12, 31))

        series = MetricsService(session, "u").monthly_series(3, today=date(2024, 6, 30))

        assert [m["label"] for m in series] == ["2024-04", "2024-05", "2024-06"]
        assert series[0] == {
            "year": 2024,
            "month": 4,
            "label": "2024-04",
            "income": "0",
            "expenses": "15.00",
            "net": "-15.00",
        }
        assert series[1]["expenses"] == "0"
        assert series[1]["net"] == "0"
        assert series[2]["income"] == "3000.00"
        assert series[2]["net"] == "2975.00"
