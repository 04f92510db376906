"""Dataclass models matching the SQLite schema.

Category and Transaction correspond to one table each. Fields match column
names exactly, apart from ``Transaction.category`` which holds the bound
Category object when one is available. All primary keys are TEXT (UUID
strings generated via uuid4()).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Category:
    title: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)


@dataclass
class TransactionDraft:
    """An unsaved transaction handed to Repository.create_transactions()."""
    title: str
    kind: str
    amount: Decimal
    category: Category | None = None


@dataclass
class Transaction:
    title: str
    kind: str
    amount: Decimal
    category_id: str | None = None
    id: str = field(default_factory=_new_id)
    category: Category | None = field(default=None, compare=False, repr=False)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
