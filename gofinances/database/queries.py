"""Reporting queries that span multiple tables.

Amounts are stored as decimal text, so sums are computed in Python with
Decimal rather than with SQL SUM() over floats. Sums run in a context with
the widest exponent range, so a large stored amount cannot raise Overflow.
"""

from __future__ import annotations

import sqlite3
from decimal import MAX_EMAX, MIN_EMIN, Context, Decimal, localcontext

from gofinances.parsers.base import INCOME, OUTCOME

_SUM_CONTEXT = Context(Emax=MAX_EMAX, Emin=MIN_EMIN)


def get_balance(conn: sqlite3.Connection) -> dict[str, Decimal]:
    """Income, outcome and total (income - outcome) over all transactions.

    Transactions whose type is neither income nor outcome do not count
    towards either side.
    """
    income = Decimal("0")
    outcome = Decimal("0")
    rows = conn.execute(
        "SELECT type, value FROM transactions WHERE type IN (?, ?)",
        (INCOME, OUTCOME),
    ).fetchall()
    with localcontext(_SUM_CONTEXT):
        for r in rows:
            if r["type"] == INCOME:
                income += Decimal(r["value"])
            else:
                outcome += Decimal(r["value"])
        total = income - outcome
    return {"income": income, "outcome": outcome, "total": total}


def get_status_counts(conn: sqlite3.Connection) -> dict[str, int]:
    row = conn.execute(
        "SELECT"
        "  (SELECT COUNT(*) FROM transactions) AS total_txns,"
        "  (SELECT COUNT(*) FROM transactions WHERE category_id IS NULL) AS uncategorized,"
        "  (SELECT COUNT(*) FROM categories) AS total_categories"
    ).fetchone()
    return dict(row)


def get_category_summary(conn: sqlite3.Connection) -> list[dict]:
    """Per-category transaction count and income/outcome sums, by title."""
    rows = conn.execute(
        "SELECT c.title, t.type, t.value"
        " FROM categories c"
        " LEFT JOIN transactions t ON t.category_id = c.id"
        " ORDER BY c.title"
    ).fetchall()
    summary: dict[str, dict] = {}
    with localcontext(_SUM_CONTEXT):
        for r in rows:
            entry = summary.setdefault(
                r["title"],
                {"title": r["title"], "count": 0,
                 "income": Decimal("0"), "outcome": Decimal("0")},
            )
            if r["value"] is None:
                continue
            entry["count"] += 1
            if r["type"] == INCOME:
                entry["income"] += Decimal(r["value"])
            elif r["type"] == OUTCOME:
                entry["outcome"] += Decimal(r["value"])
    return list(summary.values())
