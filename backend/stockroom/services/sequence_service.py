# Overview: Serialised counters for ADJ- and PO document numbers.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


ADJUSTMENT_SEQUENCE_KEY = "ADJ"


def next_sequence_value(sequence_key: str) -> int:
    """
    Atomically allocate the next value of a named counter.

    Must be called inside the caller's transaction: the UPDATE takes the row
    lock, so concurrent allocators serialise on it and the value is only
    consumed if the caller commits. First use of a key inserts the row inside
    a savepoint; losing that race falls back to the UPDATE.
    """
    if not sequence_key:
        raise ValueError("sequence_key is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.sequence_key == sequence_key)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _read_allocated() -> int:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(sequence_key=sequence_key)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        return _read_allocated()

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(sequence_key=sequence_key, next_number=2))
        return 1
    except SAIntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _read_allocated()


def next_adjustment_number() -> str:
    """ADJ-00001, ADJ-00002, ... from one global counter."""
    return f"ADJ-{next_sequence_value(ADJUSTMENT_SEQUENCE_KEY):05d}"


def next_purchase_number(when: datetime | None = None) -> str:
    """PO + YYYY + MM + 4-digit counter that restarts every month."""
    when = when or utcnow()
    key = f"PO{when.year:04d}{when.month:02d}"
    return f"{key}{next_sequence_value(key):04d}"
