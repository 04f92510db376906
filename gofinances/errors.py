"""Error kinds raised by the transaction import pipeline.

Every fatal error derives from ImportTransactionsError and names the stage
that failed, so callers can report a single error value per import.
CleanupWarning is not an exception: it is issued through ``warnings`` when
the consumed file cannot be removed after a successful import.
"""

from __future__ import annotations


class ImportTransactionsError(Exception):
    """Base class for fatal import failures."""

    stage: str = "import"

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class InputUnreadable(ImportTransactionsError):
    """The input file could not be opened, or reading failed mid-stream."""

    stage = "read"


class MalformedInputError(ImportTransactionsError):
    """A line could not be tokenized into fields."""

    stage = "parse"

    def __init__(self, message: str, path: str | None = None, line: int | None = None):
        self.line = line
        super().__init__(message, path)


class CategoryPersistError(ImportTransactionsError):
    """The batch category write failed. No transaction was written."""

    stage = "categories"


class TransactionPersistError(ImportTransactionsError):
    """The batch transaction write failed.

    Categories created earlier in the same import stay committed.
    """

    stage = "transactions"


class CleanupWarning(UserWarning):
    """The consumed input file could not be deleted after a successful import."""
