from __future__ import annotations

from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.app.core.errors import ConflictError
from backend.app.models.sales import Sale

INVOICE_PREFIX = "INV"
SEQUENCE_WIDTH = 6
MAX_SEQUENCE = 10**SEQUENCE_WIDTH - 1


def invoice_prefix(day: date) -> str:
    """Return the day-scoped prefix, e.g. ``INV20250616``."""
    return f"{INVOICE_PREFIX}{day:%Y%m%d}"


def format_invoice_number(day: date, sequence: int) -> str:
    """Return a formatted invoice number like INV20250616000001."""
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise ValueError(f"Invoice sequence out of range: {sequence}")
    return f"{invoice_prefix(day)}{sequence:0{SEQUENCE_WIDTH}d}"


def parse_invoice_sequence(invoice_number: str, day: date) -> int | None:
    """Return the sequence part of *invoice_number* if it belongs to *day*."""
    prefix = invoice_prefix(day)
    if not invoice_number.startswith(prefix):
        return None
    suffix = invoice_number[len(prefix):]
    if len(suffix) != SEQUENCE_WIDTH or not suffix.isdigit():
        return None
    return int(suffix)


def allocate_invoice_number(db: Session, day: date) -> str:
    """Return the next invoice number for *day*.

    Reads the highest number already written for the day; numbers are
    fixed width so the lexical maximum is the numeric one. Two concurrent
    callers can get the same answer: the UNIQUE constraints on
    ``sales.invoice_number`` and ``invoices.invoice_number`` reject the
    second commit, and the checkout retries with a fresh allocation.
    """
    prefix = invoice_prefix(day)
    last = (
        db.query(func.max(Sale.invoice_number))
        .filter(Sale.invoice_number.like(f"{prefix}%"))
        .scalar()
    )
    sequence = 1
    if last is not None:
        last_sequence = parse_invoice_sequence(last, day)
        if last_sequence is not None:
            sequence = last_sequence + 1
    if sequence > MAX_SEQUENCE:
        raise ConflictError(f"Invoice sequence exhausted for {day.isoformat()}")
    return format_invoice_number(day, sequence)
