from __future__ import annotations

import argparse
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from csv_utils import parse_amount
from database import session_scope
from models import Category, Expense, ExpenseStatus, TransactionType
from periods import to_utc_naive
from schemas import LegacyExpenseRow

logger = logging.getLogger(__name__)

LEGACY_DEFAULT_CATEGORY = "uncategorized"
REQUIRED_COLUMNS = {"user_id", "title", "amount", "category"}


@dataclass(frozen=True)
class LegacyCategoryMappingRow:
    idx: int
    legacy_category: str
    expense_count: int
    suggested_category_id: Optional[int]
    suggested_category_name: Optional[str]


@dataclass(frozen=True)
class LegacyDBPreview:
    expenses_count: int
    min_date: Optional[datetime]
    max_date: Optional[datetime]
    mapping_rows: list[LegacyCategoryMappingRow]
    warnings: list[str]


def _connect_readonly(path: Path) -> sqlite3.Connection:
    uri = f"file:{path.resolve()}?mode=ro"
    con = sqlite3.connect(uri, uri=True)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA query_only=ON;")
    return con


def _legacy_columns(con: sqlite3.Connection) -> set[str]:
    cur = con.cursor()
    cur.execute(
        "select name from sqlite_master where type='table' and name='expenses'"
    )
    if cur.fetchone() is None:
        raise ValueError("Legacy DB missing table: expenses")
    cur.execute("pragma table_info(expenses)")
    present = {row["name"] for row in cur.fetchall()}
    missing = REQUIRED_COLUMNS - present
    if missing:
        raise ValueError(
            f"Legacy DB table 'expenses' missing columns: {', '.join(sorted(missing))}"
        )
    return present


def _parse_legacy_datetime(value: object) -> datetime:
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 100_000_000_000 else value
        return datetime.utcfromtimestamp(seconds)
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
        except ValueError as exc:
            raise ValueError(f"Invalid legacy datetime: {text}") from exc
    return to_utc_naive(parsed)


def _legacy_category_name(value: object) -> str:
    name = str(value or "").strip()
    return name or LEGACY_DEFAULT_CATEGORY


def _read_rows(con: sqlite3.Connection, columns: set[str]) -> list[LegacyExpenseRow]:
    cur = con.cursor()
    cur.execute("select * from expenses order by rowid")
    rows: list[LegacyExpenseRow] = []
    for idx, raw in enumerate(cur.fetchall(), start=1):
        try:
            rows.append(
                LegacyExpenseRow(
                    user_id=str(raw["user_id"]),
                    title=str(raw["title"]),
                    description=raw["description"] if "description" in columns else None,
                    amount_cents=parse_amount(str(raw["amount"])),
                    type=TransactionType(
                        (raw["type"] if "type" in columns else None) or "expense"
                    ),
                    date=(
                        _parse_legacy_datetime(raw["date"])
                        if "date" in columns and raw["date"] is not None
                        else datetime.utcnow()
                    ),
                    category=_legacy_category_name(raw["category"]),
                    notes=raw["notes"] if "notes" in columns else None,
                    status=ExpenseStatus(
                        (raw["status"] if "status" in columns else None) or "cleared"
                    ),
                )
            )
        except ValueError as exc:
            raise ValueError(f"Legacy row {idx}: {exc}") from exc
    return rows


class LegacyImportService:
    """Imports expenses whose category is a free-text column into the FK schema."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _category_lookup(self) -> dict[str, Category]:
        return {
            category.name.lower(): category
            for category in self.session.scalars(select(Category))
        }

    def preview(self, legacy_db_path: Path) -> LegacyDBPreview:
        if not legacy_db_path.exists():
            raise ValueError("Legacy DB file not found")

        con = _connect_readonly(legacy_db_path)
        try:
            rows = _read_rows(con, _legacy_columns(con))
        finally:
            con.close()

        counts: dict[str, int] = {}
        for row in rows:
            counts[row.category] = counts.get(row.category, 0) + 1

        warnings: list[str] = []
        variants: dict[str, set[str]] = {}
        for name in counts:
            variants.setdefault(name.lower(), set()).add(name)
        for names in variants.values():
            if len(names) > 1:
                warnings.append(f"Category casing differs: {', '.join(sorted(names))}")

        lookup = self._category_lookup()
        mapping_rows: list[LegacyCategoryMappingRow] = []
        for idx, name in enumerate(sorted(counts, key=str.lower)):
            suggested = lookup.get(name.lower())
            mapping_rows.append(
                LegacyCategoryMappingRow(
                    idx=idx,
                    legacy_category=name,
                    expense_count=counts[name],
                    suggested_category_id=suggested.id if suggested else None,
                    suggested_category_name=suggested.name if suggested else None,
                )
            )

        dates = [row.date for row in rows]
        return LegacyDBPreview(
            expenses_count=len(rows),
            min_date=min(dates) if dates else None,
            max_date=max(dates) if dates else None,
            mapping_rows=mapping_rows,
            warnings=warnings,
        )

    def commit(
        self, legacy_db_path: Path, *, mapping_targets: dict[str, str]
    ) -> dict[str, int]:
        """Import legacy rows.

        ``mapping_targets`` maps each legacy category name to ``"existing:<id>"``,
        ``"create"`` or ``"discard"``. Legacy categories without an entry fall
        back to a case-insensitive name match and fail when there is none.
        """
        if not legacy_db_path.exists():
            raise ValueError("Legacy DB file not found")

        con = _connect_readonly(legacy_db_path)
        try:
            rows = _read_rows(con, _legacy_columns(con))
        finally:
            con.close()

        lookup = self._category_lookup()
        category_id_by_legacy: dict[str, int] = {}
        discarded: set[str] = set()
        created = 0

        for name in sorted({row.category for row in rows}, key=str.lower):
            target = mapping_targets.get(name)
            if target == "discard":
                discarded.add(name)
                continue
            if target and target.startswith("existing:"):
                category_id = int(target.split(":", 1)[1])
                if not self.session.get(Category, category_id):
                    raise ValueError(f"Mapped category not found: {category_id}")
                category_id_by_legacy[name] = category_id
                continue
            existing = lookup.get(name.lower())
            if existing:
                category_id_by_legacy[name] = existing.id
                continue
            if target != "create":
                raise ValueError(f"Missing mapping target for legacy category '{name}'")
            legacy_type = next(row.type for row in rows if row.category == name)
            category = Category(name=name, type=legacy_type)
            self.session.add(category)
            self.session.flush()
            lookup[name.lower()] = category
            category_id_by_legacy[name] = category.id
            created += 1

        imported = 0
        for row in rows:
            if row.category in discarded:
                continue
            self.session.add(
                Expense(
                    user_id=row.user_id,
                    title=row.title,
                    description=row.description,
                    amount_cents=row.amount_cents,
                    type=row.type,
                    date=row.date,
                    category_id=category_id_by_legacy[row.category],
                    notes=row.notes,
                    status=row.status,
                )
            )
            imported += 1

        self.session.commit()
        logger.info(
            f"legacy_import: imported={imported} discarded={len(rows) - imported} "
            f"categories_created={created}"
        )
        return {
            "imported": imported,
            "discarded": len(rows) - imported,
            "categories_created": created,
        }


def _parse_targets(values: list[str]) -> dict[str, str]:
    targets: dict[str, str] = {}
    for value in values:
        name, sep, target = value.partition("=")
        if not sep or not name.strip() or not target.strip():
            raise ValueError(f"Invalid mapping {value!r}, expected CATEGORY=TARGET")
        targets[name.strip()] = target.strip()
    return targets


def _print_preview(preview: LegacyDBPreview) -> None:
    print(
        f"{preview.expenses_count} expenses "
        f"({preview.min_date or '-'} .. {preview.max_date or '-'})"
    )
    for row in preview.mapping_rows:
        target = (
            f"existing:{row.suggested_category_id} ({row.suggested_category_name})"
            if row.suggested_category_id
            else "no match"
        )
        print(f"  {row.legacy_category}: {row.expense_count} -> {target}")
    for warning in preview.warnings:
        print(f"warning: {warning}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Preview or import expenses from a legacy SQLite database"
    )
    parser.add_argument("path", type=Path, help="legacy database file")
    parser.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="CATEGORY=TARGET",
        help="target for a legacy category: existing:<id>, create or discard",
    )
    parser.add_argument(
        "--commit", action="store_true", help="import the rows instead of previewing"
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    try:
        targets = _parse_targets(args.map)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        with session_scope() as session:
            service = LegacyImportService(session)
            if args.commit:
                result = service.commit(args.path, mapping_targets=targets)
                print(
                    f"imported={result['imported']} discarded={result['discarded']} "
                    f"categories_created={result['categories_created']}"
                )
            else:
                _print_preview(service.preview(args.path))
    except ValueError as exc:
        parser.exit(1, f"legacy import failed: {exc}\n")


if __name__ == "__main__":
    main()
