from __future__ import annotations

from datetime import date
from typing import Optional

from flask import Flask, jsonify

from ..common.datetime_utils import parse_iso_date
from ..common.http import json_body, payment_request_to_dict, suggestion_to_dict
from ..common.validators import require_non_empty
from ..container import Container
from ..core.enums import PaymentMethod
from ..core.exceptions import ValidationError
from .model import PaymentRequestDraft


def register(app: Flask, container: Container) -> None:
    workflow = container.payment_workflow

    def _today() -> date:
        return container.clock().date()

    def _due_date(raw) -> Optional[date]:
        if not raw:
            return None
        try:
            return parse_iso_date(str(raw))
        except ValueError:
            raise ValidationError("Invalid due date", {"due_date": "Due date must be YYYY-MM-DD"})

    def _method(raw) -> PaymentMethod:
        try:
            return PaymentMethod(str(raw or PaymentMethod.MPESA.value).strip().lower())
        except ValueError:
            raise ValidationError("Invalid payment method", {"method": "Unsupported payment method"})

    def _flag(raw) -> bool:
        if isinstance(raw, str):
            return raw.strip().lower() in {"1", "true", "yes", "on"}
        return bool(raw)

    @app.route("/payment-requests", methods=["POST"], endpoint="create_payment_request")
    def create_payment_request():
        data = json_body()
        payment = workflow.create(
            PaymentRequestDraft(
                student_id=data.get("student_id"),
                requested_by=data.get("requested_by"),
                amount=data.get("amount"),
                purpose=data.get("purpose"),
                due_date=_due_date(data.get("due_date")),
                allow_partial=_flag(data.get("allow_partial")),
                minimum_amount=data.get("minimum_amount"),
            )
        )
        return jsonify(payment_request_to_dict(payment, today=_today())), 201

    @app.route("/payment-requests/overdue", methods=["GET"], endpoint="overdue_payment_requests")
    def overdue_payment_requests():
        today = _today()
        payments = workflow.list_overdue(today)
        return jsonify({"items": [payment_request_to_dict(p, today=today) for p in payments], "count": len(payments)})

    @app.route("/payment-requests/<request_id>", methods=["GET"], endpoint="get_payment_request")
    def get_payment_request(request_id: str):
        return jsonify(payment_request_to_dict(workflow.get(request_id), today=_today()))

    @app.route("/payment-requests/<request_id>/approve", methods=["POST"], endpoint="approve_payment_request")
    def approve_payment_request(request_id: str):
        data = json_body()
        payment = workflow.approve(
            request_id=request_id,
            actor_id=require_non_empty(data.get("actor_id"), "actor_id"),
        )
        return jsonify(payment_request_to_dict(payment, today=_today()))

    @app.route("/payment-requests/<request_id>/reject", methods=["POST"], endpoint="reject_payment_request")
    def reject_payment_request(request_id: str):
        data = json_body()
        payment = workflow.reject(
            request_id=request_id,
            actor_id=require_non_empty(data.get("actor_id"), "actor_id"),
            reason=str(data.get("reason") or ""),
        )
        return jsonify(payment_request_to_dict(payment, today=_today()))

    @app.route("/payment-requests/<request_id>/payments", methods=["POST"], endpoint="record_payment")
    def record_payment(request_id: str):
        data = json_body()
        payment = workflow.record_payment(
            request_id=request_id,
            amount=data.get("amount"),
            external_ref=data.get("external_ref"),
            method=_method(data.get("method")),
            paid_by=data.get("paid_by") or None,
        )
        return jsonify(payment_request_to_dict(payment, today=_today()))

    @app.route("/payment-requests/<request_id>/suggestions", methods=["GET"], endpoint="payment_suggestions")
    def payment_suggestions(request_id: str):
        payment = workflow.get(request_id)
        return jsonify({"items": [suggestion_to_dict(s) for s in workflow.suggest_amounts(payment)]})

    @app.route("/students/<student_id>/payment-requests", methods=["GET"], endpoint="student_payment_requests")
    def student_payment_requests(student_id: str):
        today = _today()
        payments = workflow.list_for_student(student_id)
        return jsonify({"items": [payment_request_to_dict(p, today=today) for p in payments]})
