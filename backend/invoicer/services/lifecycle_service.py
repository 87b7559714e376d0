"""
Document lifecycle state machine for invoices and offers.

Statuses:
- invoice: draft, sent, paid, overdue
- offer:   draft, sent, accepted, rejected

Natural transitions (everything else needs an explicit admin override):
- invoice: draft -> sent, sent -> paid, overdue -> paid
- offer:   draft -> sent, sent -> accepted, sent -> rejected

"Overdue" has two tiers. The stored status "overdue" only ever comes from a
manual override. The derived flag (is_overdue) is computed at read time:
status == "sent" and due_date < today. Nothing in this module writes
"overdue" automatically.

Status changes caused by remote work follow two patterns:
- download: tentative draft -> sent, then export; rolled back if export fails
- email: send first, then draft -> sent only on success
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from flask import current_app

from ..clients import ExportResult
from ..errors import LifecycleError, RemoteUnavailableError, ValidationError
from ..extensions import db, dispatcher
from ..models import Document, DocumentStatusEvent
from ..time_utils import today as today_of, utcnow
from .concurrency import commit_or_unavailable
from .tenant_service import require_document_in_tenant


STATUSES = {
    "invoice": ("draft", "sent", "paid", "overdue"),
    "offer": ("draft", "sent", "accepted", "rejected"),
}

NATURAL_TRANSITIONS = {
    "invoice": {
        "draft": {"sent"},
        "sent": {"paid"},
        "overdue": {"paid"},
    },
    "offer": {
        "draft": {"sent"},
        "sent": {"accepted", "rejected"},
    },
}

TRIGGERS = ("user", "download", "email", "override")


def check_status(kind: str, status: str) -> str:
    if status not in STATUSES.get(kind, ()):
        raise ValidationError(
            f"Invalid {kind} status: {status}",
            details={"allowed": list(STATUSES.get(kind, ()))},
        )
    return status


def can_transition(kind: str, from_status: str, to_status: str) -> bool:
    """Check if a natural transition is allowed."""
    return to_status in NATURAL_TRANSITIONS.get(kind, {}).get(from_status, set())


def is_overdue(document: Document, today: Optional[date] = None) -> bool:
    """Derived overdue flag; stored "overdue" status does not count."""
    if document.kind != "invoice" or document.status != "sent" or document.due_date is None:
        return False
    return document.due_date < (today or today_of())


def _apply_status(
    document: Document,
    to_status: str,
    *,
    trigger: str,
    actor_user_id: Optional[str],
    is_override: bool,
    now: datetime,
) -> Optional[DocumentStatusEvent]:
    from_status = document.status
    if from_status == to_status:
        return None

    document.status = to_status
    document.status_changed_at = now

    if to_status == "sent" and from_status == "draft":
        if document.sent_at is None:
            document.sent_at = now
        document.sent_count = (document.sent_count or 0) + 1
    elif to_status == "paid":
        document.paid_at = now
    elif to_status == "accepted":
        document.accepted_at = now
    elif to_status == "rejected":
        document.rejected_at = now

    event = DocumentStatusEvent(
        tenant_id=document.tenant_id,
        document_id=document.id,
        from_status=from_status,
        to_status=to_status,
        trigger=trigger,
        is_override=is_override,
        actor_user_id=actor_user_id,
        occurred_at=now,
    )
    db.session.add(event)
    return event


def _notify_status_change(document: Document, from_status: str, trigger: str) -> None:
    # Best effort; a failed webhook never undoes the change.
    dispatcher.notify_webhook(
        "document.status_changed",
        {
            "tenant_id": document.tenant_id,
            "document_id": document.id,
            "kind": document.kind,
            "number": document.number,
            "from_status": from_status,
            "to_status": document.status,
            "trigger": trigger,
        },
    )


def _commit_status_change(document: Document, from_status: str, trigger: str) -> None:
    commit_or_unavailable(f"{document.kind} {document.number} {from_status} -> {document.status}")
    current_app.logger.info(
        "%s %s: %s -> %s (%s)", document.kind, document.number, from_status, document.status, trigger
    )
    _notify_status_change(document, from_status, trigger)


def transition_status(
    tenant_id: str,
    kind: str,
    document_id: str,
    to_status: str,
    *,
    actor_user_id: Optional[str] = None,
    trigger: str = "user",
    now: Optional[datetime] = None,
) -> Document:
    """
    Apply a natural transition.

    Same-status requests are no-ops. Anything outside NATURAL_TRANSITIONS
    raises LifecycleError; use override_status for manual corrections.
    """
    document = require_document_in_tenant(document_id, tenant_id, kind)
    check_status(kind, to_status)

    from_status = document.status
    if from_status == to_status:
        return document
    if not can_transition(kind, from_status, to_status):
        raise LifecycleError(
            f"Cannot change {kind} {document.number} from {from_status} to {to_status}",
            details={"from_status": from_status, "to_status": to_status},
        )

    _apply_status(
        document,
        to_status,
        trigger=trigger,
        actor_user_id=actor_user_id,
        is_override=False,
        now=now or utcnow(),
    )
    _commit_status_change(document, from_status, trigger)
    return document


def override_status(
    tenant_id: str,
    kind: str,
    document_id: str,
    to_status: str,
    *,
    actor_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Document:
    """Manual correction: any status of the kind to any other, recorded as an override."""
    document = require_document_in_tenant(document_id, tenant_id, kind)
    check_status(kind, to_status)

    from_status = document.status
    if from_status == to_status:
        return document

    _apply_status(
        document,
        to_status,
        trigger="override",
        actor_user_id=actor_user_id,
        is_override=True,
        now=now or utcnow(),
    )
    _commit_status_change(document, from_status, "override")
    return document


def mark_sent(
    tenant_id: str,
    kind: str,
    document_id: str,
    *,
    actor_user_id: Optional[str] = None,
    trigger: str = "user",
    now: Optional[datetime] = None,
) -> Document:
    """draft -> sent; a document already past draft is left untouched."""
    document = require_document_in_tenant(document_id, tenant_id, kind)
    if document.status != "draft":
        return document
    return transition_status(
        tenant_id, kind, document_id, "sent", actor_user_id=actor_user_id, trigger=trigger, now=now
    )


def mark_paid(tenant_id: str, document_id: str, *, actor_user_id: Optional[str] = None, now: Optional[datetime] = None) -> Document:
    return transition_status(tenant_id, "invoice", document_id, "paid", actor_user_id=actor_user_id, now=now)


def accept_offer(tenant_id: str, document_id: str, *, actor_user_id: Optional[str] = None, now: Optional[datetime] = None) -> Document:
    return transition_status(tenant_id, "offer", document_id, "accepted", actor_user_id=actor_user_id, now=now)


def reject_offer(tenant_id: str, document_id: str, *, actor_user_id: Optional[str] = None, now: Optional[datetime] = None) -> Document:
    return transition_status(tenant_id, "offer", document_id, "rejected", actor_user_id=actor_user_id, now=now)


def export_payload(document: Document) -> dict:
    return document.to_dict()


def download_document(
    tenant_id: str,
    kind: str,
    document_id: str,
    *,
    actor_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[Document, ExportResult]:
    """
    Export a document; a draft counts as sent once the export succeeds.

    The export renders a draft as already sent, but nothing is written
    until it succeeds, so no write transaction is held open during the
    remote call. A failed export leaves the document draft.
    """
    document = require_document_in_tenant(document_id, tenant_id, kind)
    from_status = document.status
    tentative = from_status == "draft"

    payload = export_payload(document)
    if tentative:
        payload["status"] = "sent"

    result = dispatcher.export_document(payload)
    if not result.ok:
        current_app.logger.warning(
            "Export of %s %s failed (%s); status left at %s", kind, document_id, result.error, from_status
        )
        raise RemoteUnavailableError("Document export failed", details={"document_id": document_id})

    if tentative:
        _apply_status(
            document,
            "sent",
            trigger="download",
            actor_user_id=actor_user_id,
            is_override=False,
            now=now or utcnow(),
        )
        try:
            _commit_status_change(document, from_status, "download")
        except RemoteUnavailableError:
            current_app.logger.error(
                "Export of %s %s succeeded but the sent status could not be saved", kind, document_id
            )
            raise
    return document, result


def email_document(
    tenant_id: str,
    kind: str,
    document_id: str,
    *,
    to: Optional[str] = None,
    subject: Optional[str] = None,
    message: Optional[str] = None,
    actor_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Document:
    """
    Email a document to the customer (or an explicit recipient).

    The email is sent first; a draft is marked sent only after the email
    service confirms delivery.
    """
    document = require_document_in_tenant(document_id, tenant_id, kind)
    recipient = (to or "").strip() or (document.customer.email if document.customer else None)
    if not recipient:
        raise ValidationError("No recipient email address: customer has no email and none was given")
    if "@" not in recipient:
        raise ValidationError("Recipient email address is not valid")

    label = "Invoice" if kind == "invoice" else "Offer"
    delivered = dispatcher.send_email({
        "to": recipient,
        "subject": subject or f"{label} {document.number}",
        "body": message or "",
        "document": export_payload(document),
    })
    if not delivered:
        raise RemoteUnavailableError("Email could not be sent", details={"to": recipient})

    if document.status == "draft":
        from_status = document.status
        _apply_status(
            document,
            "sent",
            trigger="email",
            actor_user_id=actor_user_id,
            is_override=False,
            now=now or utcnow(),
        )
        try:
            _commit_status_change(document, from_status, "email")
        except RemoteUnavailableError:
            current_app.logger.error(
                "Email for %s %s was delivered but the sent status could not be saved",
                kind, document.number,
            )
            raise
    return document


def list_status_events(tenant_id: str, kind: str, document_id: str) -> list[DocumentStatusEvent]:
    require_document_in_tenant(document_id, tenant_id, kind)
    return (
        db.session.query(DocumentStatusEvent)
        .filter_by(tenant_id=tenant_id, document_id=document_id)
        .order_by(DocumentStatusEvent.occurred_at, DocumentStatusEvent.id)
        .all()
    )
