# Overview: Human-readable slip numbers for workflow records (GRN, ST, CN, RT, MR).

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import StateConflict, ValidationError
from ..models import DocumentSequence
from .tenant_service import OrgContext, org_key
from ..time_utils import period_tag


PREFIX_RECEIPT = "GRN"
PREFIX_TRANSFER = "ST"
PREFIX_CONSUMPTION = "CN"
PREFIX_RETURN = "RT"
PREFIX_REQUEST = "MR"


def next_sequence_number(ctx: OrgContext, prefix: str, period: str) -> int:
    """
    Atomically allocate the next counter value for (organization, prefix, period).

    The UPDATE takes the row lock; the first slip of a period inserts the row
    inside a savepoint so a concurrent insert only costs a re-run of the UPDATE.
    """
    key = org_key(ctx)
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_key == key,
            DocumentSequence.document_type == prefix,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    def _current() -> int:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(org_key=key, document_type=prefix, period=period)
            .scalar()
        )
        return current - 1

    if db.session.execute(stmt).rowcount:
        return _current()

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(org_key=key, document_type=prefix, period=period, next_number=2))
        return 1
    except IntegrityError:
        if not db.session.execute(stmt).rowcount:
            raise
        return _current()


def _slip_taken(ctx: OrgContext, column, slip_number: str) -> bool:
    model = column.class_
    query = db.session.query(model.id).filter(column == slip_number)
    if ctx.org_id is None:
        query = query.filter(model.org_id.is_(None))
    else:
        query = query.filter(model.org_id == ctx.org_id)
    return db.session.query(query.exists()).scalar()


def generate_slip_number(ctx: OrgContext, prefix: str, column, *, period: Optional[str] = None) -> str:
    """
    Next free `<PREFIX>-<MON>-<YEAR>-<n>` for the model owning `column`.

    Numbers imported or typed in by hand can collide with the counter, so each
    candidate is checked and a fresh one drawn, a bounded number of times.
    """
    period = period or period_tag()
    attempts = current_app.config.get("SLIP_NUMBER_MAX_ATTEMPTS", 10)
    for _ in range(attempts):
        candidate = f"{prefix}-{period}-{next_sequence_number(ctx, prefix, period)}"
        if not _slip_taken(ctx, column, candidate):
            return candidate
        current_app.logger.warning("Slip number %s already used; drawing another", candidate)
    raise StateConflict(f"Could not allocate a unique {prefix} slip number after {attempts} attempts")


def claim_slip_number(ctx: OrgContext, prefix: str, column, provided: Optional[str]) -> str:
    """Use a caller-provided slip number when it is free, otherwise generate one."""
    if provided is None or not str(provided).strip():
        return generate_slip_number(ctx, prefix, column)
    provided = str(provided).strip()
    if _slip_taken(ctx, column, provided):
        raise ValidationError(f"Slip number {provided} already exists", slip_number=provided)
    return provided
