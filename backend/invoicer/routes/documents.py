# backend/invoicer/routes/documents.py
"""
Invoice and offer routes.

Both kinds share one set of handlers; each gets its own blueprint:
- /api/invoices/...  (kind "invoice", adds POST /<id>/paid)
- /api/offers/...    (kind "offer",   adds POST /<id>/accept and /<id>/reject)

SECURITY:
- All routes require an authenticated principal with a tenant
- tenant_id comes from the resolved membership, never from the request body
- Status overrides require admin
"""

from flask import Blueprint, Response, request, jsonify, g

from ..decorators import require_tenant, require_admin
from ..errors import ValidationError
from ..services import document_service, duplication_service, lifecycle_service, sequence_service
from ..validation import coerce_text, require_json_object


def _document_response(document, status: int = 200):
    return jsonify({"document": document_service.serialize_document(document)}), status


def _optional_json() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    return require_json_object(payload)


def _make_blueprint(kind: str, plural: str) -> Blueprint:
    bp = Blueprint(plural, __name__, url_prefix=f"/api/{plural}")

    @bp.get("")
    @require_tenant
    def list_route():
        """Query params: status=<status|overdue>, customer_id=<id>."""
        documents = document_service.list_documents(
            g.tenant_id,
            kind,
            status=request.args.get("status") or None,
            customer_id=request.args.get("customer_id") or None,
        )
        return jsonify({plural: [document_service.serialize_document(d) for d in documents]}), 200

    @bp.post("")
    @require_tenant
    def create_route():
        payload = require_json_object(request.get_json(silent=True))
        document = document_service.create_document(
            g.tenant_id, kind, payload, actor_user_id=g.principal.id
        )
        return _document_response(document, 201)

    @bp.get("/next-number")
    @require_tenant
    def next_number_route():
        """Preview only; the number is allocated when the document is created."""
        return jsonify({"next_number": sequence_service.preview_next_number(g.tenant_id, kind)}), 200

    @bp.get("/<document_id>")
    @require_tenant
    def get_route(document_id: str):
        return _document_response(document_service.get_document(g.tenant_id, kind, document_id))

    @bp.patch("/<document_id>")
    @require_tenant
    def update_route(document_id: str):
        payload = require_json_object(request.get_json(silent=True))
        return _document_response(document_service.update_draft(g.tenant_id, kind, document_id, payload))

    @bp.delete("/<document_id>")
    @require_tenant
    def delete_route(document_id: str):
        document_service.delete_document(g.tenant_id, kind, document_id)
        return jsonify({"deleted": document_id}), 200

    @bp.post("/<document_id>/send")
    @require_tenant
    def send_route(document_id: str):
        """Mark as sent without emailing (e.g. sent by post)."""
        document = lifecycle_service.mark_sent(
            g.tenant_id, kind, document_id, actor_user_id=g.principal.id
        )
        return _document_response(document)

    @bp.post("/<document_id>/email")
    @require_tenant
    def email_route(document_id: str):
        """
        Body (all optional): {"to": "...", "subject": "...", "message": "..."}

        Defaults to the customer's email address. The document is marked
        sent only after the email service accepted the message.
        """
        payload = _optional_json()
        document = lifecycle_service.email_document(
            g.tenant_id,
            kind,
            document_id,
            to=coerce_text("to", payload.get("to")),
            subject=coerce_text("subject", payload.get("subject"), max_length=255),
            message=coerce_text("message", payload.get("message")),
            actor_user_id=g.principal.id,
        )
        return _document_response(document)

    @bp.get("/<document_id>/download")
    @require_tenant
    def download_route(document_id: str):
        document, result = lifecycle_service.download_document(
            g.tenant_id, kind, document_id, actor_user_id=g.principal.id
        )
        response = Response(result.content, mimetype=result.content_type)
        response.headers["Content-Disposition"] = f'attachment; filename="{document.number}.pdf"'
        response.headers["X-Document-Status"] = document.status
        return response

    @bp.post("/<document_id>/status")
    @require_tenant
    @require_admin
    def override_status_route(document_id: str):
        """Manual status correction. Body: {"status": "<any status of this kind>"}"""
        payload = require_json_object(request.get_json(silent=True))
        status = payload.get("status")
        if not isinstance(status, str) or not status:
            raise ValidationError("status is required")
        document = lifecycle_service.override_status(
            g.tenant_id, kind, document_id, status, actor_user_id=g.principal.id
        )
        return _document_response(document)

    @bp.post("/<document_id>/duplicate")
    @require_tenant
    def duplicate_route(document_id: str):
        document = duplication_service.duplicate_document(
            g.tenant_id, kind, document_id, actor_user_id=g.principal.id
        )
        return _document_response(document, 201)

    @bp.post("/<document_id>/clear-duplicate")
    @require_tenant
    def clear_duplicate_route(document_id: str):
        return _document_response(duplication_service.clear_duplicate_marker(g.tenant_id, kind, document_id))

    @bp.get("/<document_id>/history")
    @require_tenant
    def history_route(document_id: str):
        events = lifecycle_service.list_status_events(g.tenant_id, kind, document_id)
        return jsonify({"events": [e.to_dict() for e in events]}), 200

    if kind == "invoice":
        @bp.post("/<document_id>/paid")
        @require_tenant
        def paid_route(document_id: str):
            return _document_response(
                lifecycle_service.mark_paid(g.tenant_id, document_id, actor_user_id=g.principal.id)
            )
    else:
        @bp.post("/<document_id>/accept")
        @require_tenant
        def accept_route(document_id: str):
            return _document_response(
                lifecycle_service.accept_offer(g.tenant_id, document_id, actor_user_id=g.principal.id)
            )

        @bp.post("/<document_id>/reject")
        @require_tenant
        def reject_route(document_id: str):
            return _document_response(
                lifecycle_service.reject_offer(g.tenant_id, document_id, actor_user_id=g.principal.id)
            )

    return bp


invoices_bp = _make_blueprint("invoice", "invoices")
offers_bp = _make_blueprint("offer", "offers")
