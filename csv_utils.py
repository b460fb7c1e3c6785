import csv
import re
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Sequence

from models import Expense, decimal_to_cents

EXPORT_HEADER = [
    "Date",
    "Type",
    "Status",
    "Amount",
    "Category",
    "Title",
    "Description",
    "Notes",
]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_amount(value: str) -> int:
    """Parse a free-form amount string (``"1 234,50"``, ``"$12.5"``) into cents."""
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise ValueError("Amount must be positive")
    return decimal_to_cents(amount)


def export_expenses(expenses: Sequence[Expense]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADER)
    for expense in expenses:
        writer.writerow(
            [
                expense.date.isoformat(),
                expense.type.value,
                expense.status.value,
                str(expense.amount),
                sanitize_csv_value(expense.category.name if expense.category else ""),
                sanitize_csv_value(expense.title),
                sanitize_csv_value(expense.description or ""),
                sanitize_csv_value(expense.notes or ""),
            ]
        )
    return output.getvalue()
