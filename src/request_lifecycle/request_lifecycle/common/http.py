from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from ..core.exceptions import (
    AlreadyTerminalError,
    AuthorizationError,
    ConflictError,
    DomainError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from ..guardian_links.model import GuardianLinkRequest
from ..payments.model import PaymentInstallment, PaymentRequest
from ..payments.suggestions import AmountSuggestion
from ..validation.engine import calculate_payment_percentage
from .datetime_utils import isoformat

logger = logging.getLogger(__name__)

# Order matters: subclasses before their bases.
_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (AlreadyTerminalError, 409),
    (ExpiredError, 410),
    (ConflictError, 503),
)


def status_for(error: DomainError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 400


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(error: DomainError):
        status = status_for(error)
        if status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.path, error)
        body: Dict[str, Any] = {"error": error.kind, "message": str(error)}
        if isinstance(error, ValidationError) and error.errors:
            body["errors"] = error.errors
        return jsonify(body), status


def json_body() -> Dict[str, Any]:
    """Request JSON as a dict; a missing or non-object body reads as empty."""
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def guardian_link_to_dict(link: GuardianLinkRequest) -> Dict[str, Any]:
    return {
        "request_id": link.request_id,
        "student_id": link.student_id,
        "status": link.status.value,
        "new_guardian": {
            "full_name": link.new_guardian.full_name,
            "contact": link.new_guardian.contact,
            "relationship": link.new_guardian.relationship.value,
            "email": link.new_guardian.email,
        },
        "requested_by": link.requested_by,
        "existing_guardian_ids": sorted(link.existing_guardian_ids),
        "approved_by": list(link.approved_by),
        "awaiting": sorted(link.awaiting),
        "approvals": {"given": len(set(link.approved_by)), "required": len(link.existing_guardian_ids)},
        "created_at": isoformat(link.created_at),
        "expires_at": isoformat(link.expires_at),
        "decided_by": link.decided_by,
        "decided_at": isoformat(link.decided_at),
        "rejection_reason": link.rejection_reason,
    }


def installment_to_dict(installment: PaymentInstallment) -> Dict[str, Any]:
    return {
        "installment_id": installment.installment_id,
        "amount": money(installment.amount),
        "payment_date": isoformat(installment.payment_date),
        "external_ref": installment.external_ref,
        "method": installment.method.value,
        "paid_by": installment.paid_by,
    }


def payment_request_to_dict(payment: PaymentRequest, *, today: date) -> Dict[str, Any]:
    return {
        "request_id": payment.request_id,
        "student_id": payment.student_id,
        "requested_by": payment.requested_by,
        "status": payment.status.value,
        "amount": money(payment.amount),
        "paid_amount": money(payment.paid_amount),
        "remaining_amount": money(payment.remaining_amount),
        "percentage_paid": calculate_payment_percentage(payment.paid_amount, payment.amount),
        "purpose": payment.purpose,
        "due_date": payment.due_date.isoformat(),
        "is_overdue": payment.is_overdue(today),
        "allow_partial": payment.allow_partial,
        "minimum_amount": money(payment.minimum_amount),
        "installment_count": payment.installment_count,
        "payment_history": [installment_to_dict(i) for i in payment.payment_history],
        "created_at": isoformat(payment.created_at),
        "decided_by": payment.decided_by,
        "decided_at": isoformat(payment.decided_at),
        "rejection_reason": payment.rejection_reason,
    }


def suggestion_to_dict(suggestion: AmountSuggestion) -> Dict[str, Any]:
    return {"label": suggestion.label, "amount": money(suggestion.amount), "description": suggestion.description}
