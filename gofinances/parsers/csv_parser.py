"""Transaction CSV parser.

Fixed four-column layout, header on the first line:

    title,type,value,category
    Rent,outcome,1200.00,Housing

Fields may carry surrounding whitespace. Rows are read lazily from a byte
stream so files larger than memory can be parsed; only the accepted
candidates are buffered.
"""

from __future__ import annotations

import csv
import io
import logging
import sys
from collections.abc import Iterator
from typing import BinaryIO

from gofinances.errors import InputUnreadable, MalformedInputError

from .base import KNOWN_KINDS, BaseParser, TransactionCandidate, parse_amount

logger = logging.getLogger(__name__)

FIELD_COUNT = 4


def _lift_field_size_limit() -> None:
    """Let csv.reader accept fields of any length.

    The csv module caps a single field at 128 KiB by default, which would
    fail a well-formed file with one long title. sys.maxsize overflows a C
    long on some platforms, so step down until the limit is accepted.
    """
    limit = sys.maxsize
    while True:
        try:
            csv.field_size_limit(limit)
            return
        except OverflowError:
            limit //= 2


class TransactionCsvParser(BaseParser):
    """Parse transaction CSV exports.

    Args:
        delimiter: Field separator. Configure in config/import.yaml.
        from_line: First 1-based line that holds data. The default of 2
            skips the header.
        encoding: Text encoding of the byte stream.
    """

    def __init__(
        self,
        delimiter: str = ",",
        from_line: int = 2,
        encoding: str = "utf-8",
    ):
        super().__init__()
        self.delimiter = delimiter
        self.from_line = from_line
        self.encoding = encoding

    def iter_rows(self, stream: BinaryIO) -> Iterator[list[str]]:
        """Yield one field list per data line.

        Raises:
            MalformedInputError: If a line cannot be tokenized (unterminated
                quote, text after a closing quote, undecodable bytes).
            InputUnreadable: If the underlying stream fails mid-read.
        """
        _lift_field_size_limit()
        text = io.TextIOWrapper(stream, encoding=self.encoding, newline="")
        reader = csv.reader(text, delimiter=self.delimiter, strict=True)
        while True:
            try:
                fields = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                raise MalformedInputError(
                    f"Line {reader.line_num}: {e}", line=reader.line_num,
                ) from e
            except UnicodeDecodeError as e:
                line = reader.line_num + 1
                raise MalformedInputError(
                    f"Input is not valid {self.encoding} text (near line {line})",
                    line=line,
                ) from e
            except OSError as e:
                raise InputUnreadable(f"Read failed after line {reader.line_num}: {e}") from e

            if reader.line_num < self.from_line:
                continue
            if not fields:
                # blank line
                continue
            yield fields

    def normalize(self, fields: list[str]) -> TransactionCandidate | None:
        cells = [cell.strip() for cell in fields[:FIELD_COUNT]]
        cells.extend([""] * (FIELD_COUNT - len(cells)))
        title, kind, raw_amount, category_name = cells

        if not title or not kind or not raw_amount:
            return None

        amount = parse_amount(raw_amount)
        if amount is None:
            return None

        if kind not in KNOWN_KINDS:
            logger.debug("Passing through unexpected transaction type '%s'", kind)

        return TransactionCandidate(
            title=title,
            kind=kind,
            amount=amount,
            category_name=category_name,
        )
