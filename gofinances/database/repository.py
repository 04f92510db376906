"""Repository: CRUD operations against SQLite using raw SQL.

All methods take/return dataclass instances from models.py.
Connection management uses a single connection with WAL mode and
foreign keys enabled.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from decimal import Decimal
from pathlib import Path

from .models import Category, Transaction, TransactionDraft

# Stay well below SQLite's bound-variable limit for IN (...) lookups.
_CHUNK_SIZE = 500


class DuplicateCategoryError(Exception):
    """Raised when a batch insert hits the UNIQUE constraint on categories.title.

    The whole batch has been rolled back when this is raised, so the caller
    can re-read existing categories and retry with the remaining titles.
    """

    def __init__(self, titles: list[str]):
        self.titles = titles
        super().__init__(
            f"Category title already exists (batch of {len(titles)} rolled back)"
        )


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    # executescript auto-commits, so we split statements manually
                    sql_text = sql_file.read_text()
                    for statement in sql_text.split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                except Exception:
                    self.conn.rollback()
                    raise

    # ── Categories ──────────────────────────────────────────

    def find_categories(self, titles: Iterable[str]) -> list[Category]:
        """Return stored categories whose title is in ``titles``.

        One IN (...) query per chunk of distinct titles; duplicates in the
        input are collapsed first.
        """
        distinct = list(dict.fromkeys(titles))
        if not distinct:
            return []
        result: list[Category] = []
        for i in range(0, len(distinct), _CHUNK_SIZE):
            chunk = distinct[i : i + _CHUNK_SIZE]
            ph = ",".join("?" * len(chunk))
            rows = self.conn.execute(
                f"SELECT * FROM categories WHERE title IN ({ph})",
                chunk,
            ).fetchall()
            result.extend(self._row_to_category(r) for r in rows)
        return result

    def create_categories(self, titles: list[str]) -> list[Category]:
        """Insert one category per title atomically and return them.

        Raises:
            DuplicateCategoryError: If any title is already stored. Nothing
                from the batch is kept in that case.
        """
        categories = [Category(title=t) for t in titles]
        if not categories:
            return []
        try:
            self.conn.execute("BEGIN")
            self.conn.executemany(
                "INSERT INTO categories (id, title, created_at, updated_at)"
                " VALUES (?, ?, ?, ?)",
                [(c.id, c.title, c.created_at, c.updated_at) for c in categories],
            )
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            if "categories.title" in str(e):
                raise DuplicateCategoryError(list(titles)) from e
            raise
        except Exception:
            self.conn.rollback()
            raise
        return categories

    def get_category(self, category_id: str) -> Category | None:
        row = self.conn.execute(
            "SELECT * FROM categories WHERE id = ?", (category_id,)
        ).fetchone()
        return self._row_to_category(row) if row else None

    def list_categories(self) -> list[Category]:
        rows = self.conn.execute(
            "SELECT * FROM categories ORDER BY title"
        ).fetchall()
        return [self._row_to_category(r) for r in rows]

    # ── Transactions ────────────────────────────────────────

    def create_transactions(
        self, drafts: list[TransactionDraft]
    ) -> list[Transaction]:
        """Insert multiple transactions atomically.

        Uses a transaction wrapper so either all inserts succeed or none do.
        Returned records keep the input order and carry the bound Category.
        """
        txns = [
            Transaction(
                title=d.title,
                kind=d.kind,
                amount=d.amount,
                category_id=d.category.id if d.category is not None else None,
                category=d.category,
            )
            for d in drafts
        ]
        if not txns:
            return []
        try:
            self.conn.execute("BEGIN")
            self.conn.executemany(
                "INSERT INTO transactions"
                " (id, title, type, value, category_id, created_at, updated_at)"
                " VALUES (?,?,?,?,?,?,?)",
                [
                    (t.id, t.title, t.kind, str(t.amount), t.category_id,
                     t.created_at, t.updated_at)
                    for t in txns
                ],
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return txns

    def get_transaction(self, txn_id: str) -> Transaction | None:
        row = self.conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (txn_id,)
        ).fetchone()
        return self._row_to_transaction(row) if row else None

    def list_transactions(self) -> list[Transaction]:
        rows = self.conn.execute(
            "SELECT * FROM transactions ORDER BY created_at, rowid"
        ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    # ── Row Converters ──────────────────────────────────────

    @staticmethod
    def _row_to_category(row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"], title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"], title=row["title"],
            kind=row["type"], amount=Decimal(row["value"]),
            category_id=row["category_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
