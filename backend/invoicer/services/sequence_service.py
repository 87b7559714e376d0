"""
Sequence allocator: per-tenant, per-kind document numbers.

Numbers are rendered from a tenant pattern such as ``F-{YYYY}-{MM}-{###}``:

- ``{YYYY}`` -> four-digit year of the allocation time
- ``{MM}``   -> two-digit month of the allocation time
- ``{###}`` or a bare run of ``#`` -> the counter, zero-padded to the run length

The counter never restarts (not per month, not per year). The next value is
``max(counter row, highest persisted sequence_value) + 1``, so a counter that
lags behind the documents table cannot hand out a number that is already in
use. The unique constraint on (tenant_id, kind, number) is the final guard;
``insert_with_fresh_number`` retries exactly once when it trips.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from flask import current_app
from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, OperationalError

from ..errors import ConflictError, RemoteUnavailableError, ValidationError
from ..extensions import db
from ..models import DOCUMENT_KINDS, Document, DocumentSequence, TenantSettings
from ..time_utils import utcnow
from .concurrency import commit_or_unavailable, run_with_retry


_TOKEN_RE = re.compile(r"\{YYYY\}|\{MM\}|\{(#+)\}|(#+)")
_COUNTER_RE = re.compile(r"\{(#+)\}|(#+)")

MAX_PATTERN_LENGTH = 40


@dataclass(frozen=True)
class AllocatedNumber:
    number: str
    value: int


def check_kind(kind: str) -> str:
    if kind not in DOCUMENT_KINDS:
        raise ValidationError(f"Unknown document kind: {kind}")
    return kind


def validate_pattern(pattern) -> str:
    """Pattern must be a non-empty string with exactly one counter token."""
    if not isinstance(pattern, str) or not pattern.strip():
        raise ValidationError("Number format must be a non-empty string")
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise ValidationError(f"Number format must be at most {MAX_PATTERN_LENGTH} characters")
    counters = _COUNTER_RE.findall(pattern)
    if len(counters) != 1:
        raise ValidationError(
            "Number format must contain exactly one counter token ({###} or ###)",
            details={"pattern": pattern},
        )
    return pattern


def render_number(pattern: str, value: int, when: datetime) -> str:
    def _substitute(match: re.Match) -> str:
        token = match.group(0)
        if token == "{YYYY}":
            return f"{when.year:04d}"
        if token == "{MM}":
            return f"{when.month:02d}"
        width = len(match.group(1) or match.group(2))
        return str(value).zfill(width)

    return _TOKEN_RE.sub(_substitute, pattern)


def number_pattern_for(tenant_id: str, kind: str) -> str:
    settings = db.session.query(TenantSettings).filter_by(tenant_id=tenant_id).first()
    if settings is not None:
        return settings.number_format_for(kind)
    if kind == "invoice":
        return current_app.config["DEFAULT_INVOICE_NUMBER_FORMAT"]
    return current_app.config["DEFAULT_OFFER_NUMBER_FORMAT"]


def _persisted_max(tenant_id: str, kind: str) -> int:
    return (
        db.session.query(func.max(Document.sequence_value))
        .filter(Document.tenant_id == tenant_id, Document.kind == kind)
        .scalar()
    ) or 0


def _counter_value(tenant_id: str, kind: str) -> int:
    return (
        db.session.query(DocumentSequence.last_value)
        .filter_by(tenant_id=tenant_id, kind=kind)
        .scalar()
    ) or 0


def _bump_counter(tenant_id: str, kind: str, floor: int) -> int:
    """Atomically set last_value = max(last_value, floor) + 1 and return it."""
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.kind == kind,
        )
        .values(
            last_value=case(
                (DocumentSequence.last_value >= floor, DocumentSequence.last_value + 1),
                else_=floor + 1,
            )
        )
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        db.session.add(DocumentSequence(tenant_id=tenant_id, kind=kind, last_value=floor + 1))
        try:
            db.session.flush()
            return floor + 1
        except IntegrityError:
            # Another writer created the row first; bump theirs instead.
            db.session.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    return _counter_value(tenant_id, kind)


def allocate_number(
    tenant_id: str,
    kind: str,
    pattern: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    minimum: int = 0,
) -> AllocatedNumber:
    """
    Reserve the next counter value for (tenant_id, kind) and render it.

    The reservation lives in the caller's open transaction; it becomes
    durable with the commit that persists the document using it.
    minimum forces the value past a number known to be taken.
    """
    check_kind(kind)
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    pattern = validate_pattern(pattern or number_pattern_for(tenant_id, kind))
    when = now or utcnow()

    def _op() -> AllocatedNumber:
        floor = max(_persisted_max(tenant_id, kind), minimum)
        value = _bump_counter(tenant_id, kind, floor)
        return AllocatedNumber(number=render_number(pattern, value, when), value=value)

    return run_with_retry(_op, label=f"allocate {kind} number")


def next_number(tenant_id: str, kind: str, pattern: Optional[str] = None, *, now: Optional[datetime] = None) -> str:
    """
    Reserve and render the next number as a standalone operation.

    Commits the counter bump (and whatever else the session holds), so a
    returned number stays used even if no document is ever written with it.
    """
    allocated = allocate_number(tenant_id, kind, pattern, now=now)
    commit_or_unavailable(f"{kind} number {allocated.number}")
    return allocated.number


def preview_next_number(tenant_id: str, kind: str, *, now: Optional[datetime] = None) -> str:
    """Render what the next allocation would produce, without reserving it."""
    check_kind(kind)
    pattern = number_pattern_for(tenant_id, kind)
    value = max(_counter_value(tenant_id, kind), _persisted_max(tenant_id, kind)) + 1
    return render_number(pattern, value, now or utcnow())


def get_sequence_state(tenant_id: str, *, now: Optional[datetime] = None) -> list[dict]:
    rows = []
    for kind in DOCUMENT_KINDS:
        rows.append({
            "kind": kind,
            "pattern": number_pattern_for(tenant_id, kind),
            "last_value": _counter_value(tenant_id, kind),
            "max_persisted_value": _persisted_max(tenant_id, kind),
            "next_number": preview_next_number(tenant_id, kind, now=now),
        })
    return rows


def _number_taken(tenant_id: str, kind: str, number: str) -> bool:
    return (
        db.session.query(Document.id)
        .filter_by(tenant_id=tenant_id, kind=kind, number=number)
        .first()
    ) is not None


def insert_with_fresh_number(
    tenant_id: str,
    kind: str,
    build: Callable[[AllocatedNumber], Document],
    *,
    pattern: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Document:
    """
    Allocate a number, build the document around it and commit.

    A unique-number violation rolls back and retries allocation + write
    once; a second violation raises ConflictError. A storage failure on
    commit has an unknown outcome and is reported as RemoteUnavailableError
    without retrying.
    """
    minimum = 0
    for attempt in range(2):
        allocated = allocate_number(tenant_id, kind, pattern, now=now, minimum=minimum)
        document = build(allocated)
        db.session.add(document)
        try:
            db.session.commit()
            return document
        except IntegrityError:
            db.session.rollback()
            if not _number_taken(tenant_id, kind, allocated.number):
                raise
            current_app.logger.warning(
                "Number %s already taken for tenant %s (%s), attempt %d",
                allocated.number, tenant_id, kind, attempt + 1,
            )
            minimum = allocated.value
        except OperationalError as exc:
            db.session.rollback()
            current_app.logger.error(
                "Commit of %s %s failed, outcome unknown: %s", kind, allocated.number, exc
            )
            raise RemoteUnavailableError("Data store unavailable; the document may not have been saved") from exc

    raise ConflictError(
        "Could not allocate a unique document number, please try again",
        details={"kind": kind},
    )
