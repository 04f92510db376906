"""Bind transaction candidates to categories and persist them in one batch."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from gofinances.database.models import Category, Transaction, TransactionDraft
from gofinances.errors import TransactionPersistError
from gofinances.parsers.base import TransactionCandidate

if TYPE_CHECKING:
    from gofinances.database.repository import Repository

logger = logging.getLogger(__name__)


class TransactionMaterializer:
    def __init__(self, repo: Repository):
        self.repo = repo

    def build_drafts(
        self,
        candidates: list[TransactionCandidate],
        pool: dict[str, Category],
    ) -> list[TransactionDraft]:
        drafts: list[TransactionDraft] = []
        for candidate in candidates:
            category = pool.get(candidate.category_name)
            if category is None:
                # Only reachable with a stale pool; keep the row, unbound.
                logger.warning(
                    "No category '%s' in pool for '%s'; storing without category",
                    candidate.category_name, candidate.title,
                )
            drafts.append(
                TransactionDraft(
                    title=candidate.title,
                    kind=candidate.kind,
                    amount=candidate.amount,
                    category=category,
                )
            )
        return drafts

    def materialize(
        self,
        candidates: list[TransactionCandidate],
        pool: dict[str, Category],
    ) -> list[Transaction]:
        """Persist one Transaction per candidate, in candidate order.

        Raises:
            TransactionPersistError: If the batch insert fails. The batch is
                rolled back as a whole.
        """
        if not candidates:
            return []
        drafts = self.build_drafts(candidates, pool)
        try:
            return self.repo.create_transactions(drafts)
        except sqlite3.Error as e:
            raise TransactionPersistError(
                f"Transaction write failed for batch of {len(drafts)}: {e}"
            ) from e
