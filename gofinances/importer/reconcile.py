"""Category reconciliation: map every referenced name to one stored Category.

Runs once per import, after the whole file has been read:
  1. one batched lookup of the referenced titles
  2. distinct missing titles, in first-seen order
  3. one batched insert of the missing titles
  4. existing + new categories as the resolution pool

Title uniqueness is enforced by the database. When a concurrent import
creates one of our missing titles between steps 1 and 3, the insert is
rolled back with DuplicateCategoryError and the steps are repeated.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from gofinances.database.models import Category
from gofinances.database.repository import DuplicateCategoryError
from gofinances.errors import CategoryPersistError

if TYPE_CHECKING:
    from gofinances.database.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONFLICT_RETRIES = 3


@dataclass
class Reconciliation:
    """Outcome of one reconcile() call."""
    pool: dict[str, Category] = field(default_factory=dict)
    created: list[Category] = field(default_factory=list)


def missing_titles(names: list[str], existing: list[Category]) -> list[str]:
    """Distinct names with no stored match, in order of first occurrence."""
    known = {c.title for c in existing}
    return [name for name in dict.fromkeys(names) if name not in known]


class CategoryReconciler:
    """Resolve category names against the repository, creating missing ones.

    Args:
        repo: Database repository.
        max_conflict_retries: Insert attempts allowed when another writer
            creates the same title concurrently.
    """

    def __init__(
        self,
        repo: Repository,
        max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
    ):
        self.repo = repo
        self.max_conflict_retries = max(1, max_conflict_retries)

    def reconcile(self, names: list[str]) -> Reconciliation:
        """Resolve every name in ``names`` to a stored Category.

        The returned pool maps each distinct name to its Category; ``created``
        lists the categories inserted by this call.

        Raises:
            CategoryPersistError: If the lookup or the batch insert fails, or
                title conflicts persist after max_conflict_retries attempts.
        """
        if not names:
            return Reconciliation()

        last_conflict: DuplicateCategoryError | None = None
        for attempt in range(1, self.max_conflict_retries + 1):
            try:
                existing = self.repo.find_categories(names)
                missing = missing_titles(names, existing)
                created = self.repo.create_categories(missing) if missing else []
            except DuplicateCategoryError as e:
                logger.info(
                    "Category title conflict on attempt %d/%d, re-reading",
                    attempt, self.max_conflict_retries,
                )
                last_conflict = e
                continue
            except sqlite3.Error as e:
                raise CategoryPersistError(f"Category write failed: {e}") from e

            if created:
                logger.info("Created %d new categories", len(created))
            pool = {c.title: c for c in existing}
            pool.update((c.title, c) for c in created)
            return Reconciliation(pool=pool, created=created)

        raise CategoryPersistError(
            f"Category titles still conflicting after {self.max_conflict_retries} attempts"
        ) from last_conflict
