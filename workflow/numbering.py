"""
Year-scoped sequential document numbers: ``<PREFIX>-<year>-<seq>``.

The next sequence is derived from the greatest existing number of the same
prefix and year. String order matches numeric order only while the sequence
keeps exactly four digits, so the partition is capped at 9999 and refuses to
go further instead of wrapping.

The read and the insert happen in one transaction. On PostgreSQL the
transaction also holds an advisory lock for the (prefix, year) partition until
commit. The unique constraint on the number column backs this up: a losing
insert is rolled back and retried with a fresh number.
"""

from __future__ import annotations

import logging
import zlib
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import utcnow
from workflow.errors import NumberingExhaustedError

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 4
SEQUENCE_LIMIT = 10**SEQUENCE_WIDTH - 1

T = TypeVar("T")


def format_document_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(number: str) -> int:
    return int(number.rsplit("-", 1)[1])


def _lock_partition(prefix: str, year: int) -> None:
    if db.engine.dialect.name != "postgresql":
        return
    lock_key = zlib.crc32(f"{prefix}-{year}".encode("ascii"))
    db.session.execute(text("SELECT pg_advisory_xact_lock(:lock_key)"), {"lock_key": lock_key})


def next_document_number(prefix: str, column, year: int | None = None) -> str:
    """Return the next free number for ``prefix`` in ``year`` (default: current UTC year)."""
    year = year or utcnow().year
    _lock_partition(prefix, year)

    last_number = (
        db.session.query(func.max(column))
        .filter(column.like(f"{prefix}-{year}-%"))
        .scalar()
    )
    sequence = parse_sequence(last_number) + 1 if last_number else 1
    if sequence > SEQUENCE_LIMIT:
        raise NumberingExhaustedError(prefix, year, SEQUENCE_LIMIT)

    return format_document_number(prefix, year, sequence)


def _number_taken(column, number: str) -> bool:
    return db.session.query(column).filter(column == number).first() is not None


def insert_numbered(
    prefix: str,
    column,
    build: Callable[[str], T],
    year: int | None = None,
) -> T:
    """Generate a number, let ``build`` stage the rows that use it, and commit.

    ``build`` runs inside the transaction and must be safe to call again: when
    the commit loses a race on the unique number the whole transaction is
    rolled back and ``build`` is called with a new number.
    """
    max_attempts = max(1, int(current_app.config.get("DOCUMENT_NUMBER_MAX_ATTEMPTS", 3)))

    attempt = 0
    while True:
        attempt += 1
        number = None
        try:
            number = next_document_number(prefix, column, year=year)
            record = build(number)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if attempt >= max_attempts or number is None or not _number_taken(column, number):
                raise
            logger.warning(
                "%s number %s already taken; retrying (attempt %s/%s).",
                prefix,
                number,
                attempt,
                max_attempts,
            )
            continue
        except Exception:
            db.session.rollback()
            raise

        return record
