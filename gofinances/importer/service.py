"""Import a transaction CSV: parse → reconcile categories → persist → clean up.

The whole file is read before anything is written. Category reconciliation
is a barrier: no transaction is built until every category name in the file
has been seen and resolved. The input file is deleted only after the
transaction batch has been committed.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from gofinances.errors import (
    CleanupWarning,
    ImportTransactionsError,
    InputUnreadable,
)
from gofinances.parsers.base import BaseParser, RowAccumulator
from gofinances.parsers.csv_parser import TransactionCsvParser

from .materialize import TransactionMaterializer
from .reconcile import DEFAULT_MAX_CONFLICT_RETRIES, CategoryReconciler
from .source import LocalFileSource

if TYPE_CHECKING:
    from gofinances.config import Config
    from gofinances.database.models import Category, Transaction
    from gofinances.database.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class ImportOutcome:
    """Everything one import produced."""
    transactions: list[Transaction] = field(default_factory=list)
    skipped_count: int = 0  # incomplete rows dropped by the normalizer
    new_categories: list[Category] = field(default_factory=list)


class ImportTransactionsService:
    """Run one import per execute() or run() call.

    Per-import results are returned, never kept on the service, so one
    service can run many imports. It is bound to one Repository, whose
    sqlite3 connection must not be used from two threads at once.

    Args:
        repo: Database repository (category and transaction store).
        parser: Row parser. Defaults to a comma-delimited TransactionCsvParser.
        source: File source used to open and delete the input.
        max_conflict_retries: Passed to CategoryReconciler.
        delete_after_import: Remove the input file after a successful import.
    """

    def __init__(
        self,
        repo: Repository,
        parser: BaseParser | None = None,
        source: LocalFileSource | None = None,
        max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
        delete_after_import: bool = True,
    ):
        self.repo = repo
        self.parser = parser or TransactionCsvParser()
        self.source = source or LocalFileSource()
        self.reconciler = CategoryReconciler(repo, max_conflict_retries)
        self.materializer = TransactionMaterializer(repo)
        self.delete_after_import = delete_after_import

    @classmethod
    def from_config(
        cls,
        repo: Repository,
        config: Config,
        source: LocalFileSource | None = None,
    ) -> ImportTransactionsService:
        parser = TransactionCsvParser(
            delimiter=config.csv_delimiter,
            from_line=config.csv_from_line,
            encoding=config.csv_encoding,
        )
        return cls(
            repo,
            parser=parser,
            source=source,
            max_conflict_retries=config.max_conflict_retries,
            delete_after_import=config.delete_after_import,
        )

    def execute(self, path: Path | str) -> list[Transaction]:
        """Import ``path`` and return the persisted transactions in file order."""
        return self.run(path).transactions

    def run(self, path: Path | str) -> ImportOutcome:
        """Import ``path`` and report transactions, skipped rows and new categories.

        Raises:
            InputUnreadable, MalformedInputError: Before any write.
            CategoryPersistError: Before any transaction write.
            TransactionPersistError: After categories were committed.
        """
        acc = self._read(path)
        resolved = self.reconciler.reconcile(acc.category_names)
        txns = self.materializer.materialize(acc.candidates, resolved.pool)

        logger.info(
            "Imported %d transaction(s) from %s (skipped=%d, new categories=%d)",
            len(txns), Path(path).name, acc.skipped_count, len(resolved.created),
        )

        if self.delete_after_import:
            self._cleanup(path)
        return ImportOutcome(
            transactions=txns,
            skipped_count=acc.skipped_count,
            new_categories=resolved.created,
        )

    def _read(self, path: Path | str) -> RowAccumulator:
        try:
            stream = self.source.open_read_stream(path)
        except OSError as e:
            raise InputUnreadable(f"Cannot open {path}: {e}", path=str(path)) from e

        with stream:
            try:
                return self.parser.parse(stream)
            except ImportTransactionsError as e:
                if e.path is None:
                    e.path = str(path)
                raise

    def _cleanup(self, path: Path | str) -> None:
        try:
            self.source.delete(path)
        except OSError as e:
            logger.warning("Could not delete imported file %s: %s", path, e)
            warnings.warn(
                CleanupWarning(f"Could not delete imported file {path}: {e}"),
                stacklevel=4,
            )


def import_transactions(
    path: Path | str,
    repo: Repository,
    config: Config | None = None,
) -> list[Transaction]:
    """Import one transaction CSV into ``repo``."""
    if config is None:
        service = ImportTransactionsService(repo)
    else:
        service = ImportTransactionsService.from_config(repo, config)
    return service.execute(path)
