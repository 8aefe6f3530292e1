from __future__ import annotations

from flask import Flask, jsonify

from ..common.http import guardian_link_to_dict, json_body
from ..common.validators import require_non_empty
from ..container import Container
from ..core.enums import RelationshipType
from ..core.exceptions import ValidationError
from ..directory.model import NewGuardian


def register(app: Flask, container: Container) -> None:
    workflow = container.guardian_link_workflow

    def _relationship(raw) -> RelationshipType:
        try:
            return RelationshipType(str(raw or RelationshipType.GUARDIAN.value).strip().lower())
        except ValueError:
            raise ValidationError("Invalid relationship", {"relationship": "Please select a valid relationship"})

    @app.route("/guardian-links", methods=["POST"], endpoint="create_guardian_link")
    def create_guardian_link():
        data = json_body()
        link = workflow.create(
            student_id=data.get("student_id"),
            new_guardian=NewGuardian(
                full_name=str(data.get("full_name") or ""),
                contact=str(data.get("contact") or ""),
                relationship=_relationship(data.get("relationship")),
                email=data.get("email") or None,
            ),
            requested_by=data.get("requested_by"),
        )
        return jsonify(guardian_link_to_dict(link)), 201

    @app.route("/guardian-links/<request_id>", methods=["GET"], endpoint="get_guardian_link")
    def get_guardian_link(request_id: str):
        return jsonify(guardian_link_to_dict(workflow.get(request_id)))

    @app.route("/guardian-links/<request_id>/approve", methods=["POST"], endpoint="approve_guardian_link")
    def approve_guardian_link(request_id: str):
        data = json_body()
        link = workflow.approve(
            request_id=request_id,
            guardian_id=require_non_empty(data.get("guardian_id"), "guardian_id"),
        )
        return jsonify(guardian_link_to_dict(link))

    @app.route("/guardian-links/<request_id>/reject", methods=["POST"], endpoint="reject_guardian_link")
    def reject_guardian_link(request_id: str):
        data = json_body()
        link = workflow.reject(
            request_id=request_id,
            guardian_id=require_non_empty(data.get("guardian_id"), "guardian_id"),
            reason=str(data.get("reason") or ""),
        )
        return jsonify(guardian_link_to_dict(link))

    @app.route("/guardians/<guardian_id>/pending-links", methods=["GET"], endpoint="pending_guardian_links")
    def pending_guardian_links(guardian_id: str):
        links = workflow.list_pending_for_guardian(guardian_id)
        return jsonify({"items": [guardian_link_to_dict(link) for link in links]})
