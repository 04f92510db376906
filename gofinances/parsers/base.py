"""Base parser: shared interface, data structures, and utility functions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from decimal import DefaultContext, Decimal, InvalidOperation
from typing import BinaryIO

INCOME = "income"
OUTCOME = "outcome"
KNOWN_KINDS = frozenset({INCOME, OUTCOME})


@dataclass(frozen=True)
class TransactionCandidate:
    """Intermediate representation output by parsers, before DB insertion."""
    title: str
    kind: str              # income | outcome (other values pass through)
    amount: Decimal
    category_name: str     # may be empty


@dataclass
class RowAccumulator:
    """Per-import buffer filled while the input stream is consumed.

    ``category_names`` runs parallel to ``candidates`` and may contain
    duplicates; the reconciler dedupes it.
    """
    candidates: list[TransactionCandidate] = field(default_factory=list)
    category_names: list[str] = field(default_factory=list)
    skipped_count: int = 0

    def add(self, candidate: TransactionCandidate | None) -> None:
        if candidate is None:
            self.skipped_count += 1
            return
        self.candidates.append(candidate)
        self.category_names.append(candidate.category_name)

    def __len__(self) -> int:
        return len(self.candidates)


class BaseParser(ABC):
    """Abstract base for input file parsers.

    Parsers hold configuration only. Everything read from one stream is
    returned in the RowAccumulator, including the count of dropped rows.
    """

    @abstractmethod
    def iter_rows(self, stream: BinaryIO) -> Iterator[list[str]]:
        """Yield raw field lists from a byte stream, header excluded."""

    @abstractmethod
    def normalize(self, fields: list[str]) -> TransactionCandidate | None:
        """Turn one field list into a candidate, or None if incomplete."""

    def parse(self, stream: BinaryIO) -> RowAccumulator:
        """Consume the whole stream and return the accumulated rows."""
        acc = RowAccumulator()
        for fields in self.iter_rows(stream):
            acc.add(self.normalize(fields))
        return acc


def parse_amount(raw: str) -> Decimal | None:
    """Parse a plain decimal string like ``1200.00`` or ``-5``.

    Returns None for empty or non-numeric text. NaN, infinity and values
    whose exponent lies outside the default decimal context (such as
    ``1e999999999``) are rejected as well.
    """
    if not raw:
        return None
    try:
        value = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    if value and not DefaultContext.Emin <= value.adjusted() <= DefaultContext.Emax:
        return None
    return value
