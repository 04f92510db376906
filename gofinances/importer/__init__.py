from .service import ImportOutcome, ImportTransactionsService, import_transactions

__all__ = ["ImportOutcome", "ImportTransactionsService", "import_transactions"]
