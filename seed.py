import argparse
import logging
import random
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import session_scope
from models import Category, Expense, ExpenseStatus, TransactionType

logger = logging.getLogger(__name__)

EXPENSE_CATEGORIES = [
    ("Food & Dining", "#F97316", "🍽️"),
    ("Transportation", "#3B82F6", "🚗"),
    ("Shopping", "#EC4899", "🛍️"),
    ("Bills & Utilities", "#EAB308", "📱"),
    ("Entertainment", "#A855F7", "🎮"),
    ("Health & Fitness", "#22C55E", "💪"),
    ("Travel", "#6366F1", "✈️"),
    ("Home", "#EF4444", "🏠"),
    ("Education", "#06B6D4", "📚"),
    ("Other", "#71717A", "📝"),
]

INCOME_CATEGORIES = [
    ("Salary", "#059669", "💰"),
    ("Freelance", "#0EA5E9", "💻"),
    ("Investment", "#8B5CF6", "📈"),
    ("Other Income", "#71717A", "💵"),
]

# (min, max) amount in whole currency units per category
AMOUNT_RANGES = {
    "Salary": (2000, 8000),
    "Freelance": (500, 3000),
    "Food & Dining": (10, 100),
    "Transportation": (5, 75),
    "Bills & Utilities": (50, 300),
    "Shopping": (20, 200),
    "Travel": (200, 1000),
}

TITLES = {
    "Food & Dining": ["Groceries", "Restaurant", "Coffee Shop", "Food Delivery", "Lunch"],
    "Transportation": ["Gas", "Taxi", "Public Transit", "Parking", "Car Maintenance"],
    "Bills & Utilities": ["Electricity", "Water", "Internet", "Phone", "Insurance"],
}


def seed_categories(session: Session) -> dict[str, Category]:
    existing = {c.name: c for c in session.scalars(select(Category))}
    created = 0
    for kind, rows in (
        (TransactionType.expense, EXPENSE_CATEGORIES),
        (TransactionType.income, INCOME_CATEGORIES),
    ):
        for name, color, icon in rows:
            if name in existing:
                continue
            category = Category(name=name, type=kind, color=color, icon=icon)
            session.add(category)
            existing[name] = category
            created += 1
    session.flush()
    logger.info(f"seed_categories: created={created} total={len(existing)}")
    return existing


def _pick_category(rng: random.Random, is_income: bool) -> str:
    if is_income:
        return rng.choice([name for name, _, _ in INCOME_CATEGORIES])
    roll = rng.random()
    if roll < 0.3:
        return "Food & Dining"
    if roll < 0.5:
        return "Transportation"
    if roll < 0.7:
        return "Bills & Utilities"
    common = {"Food & Dining", "Transportation", "Bills & Utilities"}
    return rng.choice([name for name, _, _ in EXPENSE_CATEGORIES if name not in common])


def seed_demo_expenses(
    session: Session,
    user_id: str,
    categories: dict[str, Category],
    *,
    count: int = 500,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """Spread ``count`` demo transactions evenly over the past year for ``user_id``."""
    rng = rng or random.Random()
    now = now or datetime.utcnow()
    start = now - timedelta(days=365)
    step = (now - start) / count
    for index in range(count):
        when = start + step * index
        is_income = rng.random() < 0.1
        name = _pick_category(rng, is_income)
        low, high = AMOUNT_RANGES.get(name, (100, 1000) if is_income else (10, 500))
        amount_cents = rng.randint(low * 100, high * 100)
        if is_income:
            title = "Monthly Salary" if name == "Salary" else f"{name} Payment"
        else:
            title = rng.choice(TITLES.get(name, [f"{name} purchase"]))
        session.add(
            Expense(
                user_id=user_id,
                title=title,
                amount_cents=amount_cents,
                type=TransactionType.income if is_income else TransactionType.expense,
                date=when,
                category_id=categories[name].id,
                status=rng.choice(list(ExpenseStatus)),
                created_at=when,
                updated_at=when,
            )
        )
    session.flush()
    logger.info(f"seed_demo_expenses: user={user_id} inserted={count}")
    return count


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Seed categories and demo data")
    parser.add_argument("--demo-user", help="user id to generate demo expenses for")
    parser.add_argument("--count", type=int, default=500)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    with session_scope() as session:
        categories = seed_categories(session)
        if args.demo_user:
            seed_demo_expenses(session, args.demo_user, categories, count=args.count)


if __name__ == "__main__":
    main()
